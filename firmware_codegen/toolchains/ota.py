"""OTA flashing utility discovery.

Arduino CLI has no native network upload; the ESP Arduino cores ship
``espota.py`` for that. This module locates it in the usual install
trees before falling back to PATH.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

from firmware_codegen.errors import FlashUtilityNotFoundError

logger = logging.getLogger(__name__)

ESPOTA_NAME = "espota.py"

# Default OTA ports of the ESP Arduino cores
ESP32_OTA_PORT = 3232
ESP8266_OTA_PORT = 8266

OTA_PORTS = {
    "esp32": ESP32_OTA_PORT,
    "esp8266": ESP8266_OTA_PORT,
}


def ota_port_for(fqbn: str) -> int:
    """Return the default OTA port for a board's core vendor."""
    vendor = fqbn.split(":", 1)[0].lower()
    return OTA_PORTS.get(vendor, ESP32_OTA_PORT)


def default_espota_search_paths(home: Path | None = None) -> list[Path]:
    """Return well-known directories that may contain espota.py."""
    home = home or Path.home()
    return [
        home / ".arduino15" / "packages" / "esp32" / "hardware" / "esp32",
        home / ".arduino15" / "packages" / "esp8266" / "hardware" / "esp8266",
        home / ".platformio" / "packages" / "framework-arduinoespressif32" / "tools",
        home / ".platformio" / "packages" / "framework-arduinoespressif8266" / "tools",
        Path("/usr/share/arduino/hardware/espressif/esp32/tools"),
    ]


def _walk_for(base: Path, name: str) -> Path | None:
    """Depth-first search for a file name, in sorted order."""
    for root, dirs, files in os.walk(base):
        dirs.sort()
        if name in files:
            return Path(root) / name
    return None


def find_espota(search_paths: Iterable[Path] | None = None) -> Path:
    """Locate espota.py.

    Args:
        search_paths: Directories to search recursively; defaults to
            default_espota_search_paths().

    Returns:
        Path to espota.py.

    Raises:
        FlashUtilityNotFoundError: If it is found nowhere.
    """
    paths = list(search_paths) if search_paths is not None else default_espota_search_paths()

    for base in paths:
        if not base.is_dir():
            continue
        found = _walk_for(base, ESPOTA_NAME)
        if found is not None:
            logger.debug("Found %s at %s", ESPOTA_NAME, found)
            return found

    on_path = shutil.which(ESPOTA_NAME)
    if on_path:
        return Path(on_path)

    raise FlashUtilityNotFoundError(ESPOTA_NAME, paths)


__all__ = [
    "ESP32_OTA_PORT",
    "ESP8266_OTA_PORT",
    "ESPOTA_NAME",
    "OTA_PORTS",
    "default_espota_search_paths",
    "find_espota",
    "ota_port_for",
]
