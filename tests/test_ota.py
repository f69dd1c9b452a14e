"""Tests for toolchains/ota.py module."""

from unittest.mock import patch

import pytest

from firmware_codegen.errors import FlashUtilityNotFoundError
from firmware_codegen.toolchains.ota import (
    ESP32_OTA_PORT,
    ESP8266_OTA_PORT,
    ESPOTA_NAME,
    default_espota_search_paths,
    find_espota,
    ota_port_for,
)


def place_espota(base, *parts):
    directory = base.joinpath(*parts)
    directory.mkdir(parents=True)
    path = directory / ESPOTA_NAME
    path.write_text("# espota\n")
    return path


class TestDefaultSearchPaths:
    """Tests for default_espota_search_paths function."""

    def test_arduino15_first(self, tmp_path):
        paths = default_espota_search_paths(home=tmp_path)
        assert paths[0] == tmp_path / ".arduino15" / "packages" / "esp32" / "hardware" / "esp32"

    def test_includes_platformio(self, tmp_path):
        paths = default_espota_search_paths(home=tmp_path)
        assert (
            tmp_path / ".platformio" / "packages" / "framework-arduinoespressif32" / "tools"
        ) in paths


class TestFindEspota:
    """Tests for find_espota function."""

    def test_found_in_nested_dir(self, tmp_path):
        """Should search install roots recursively."""
        expected = place_espota(tmp_path, "esp32", "3.0.4", "tools")
        assert find_espota([tmp_path]) == expected

    def test_sorted_walk(self, tmp_path):
        """Should pick the first match in sorted directory order."""
        place_espota(tmp_path, "3.0.0", "tools")
        expected = place_espota(tmp_path, "2.0.17", "tools")
        assert find_espota([tmp_path]) == expected

    def test_search_order(self, tmp_path):
        """Should honor the order of search roots."""
        first = place_espota(tmp_path / "first", "tools")
        place_espota(tmp_path / "second", "tools")
        assert find_espota([tmp_path / "first", tmp_path / "second"]) == first

    def test_missing_roots_skipped(self, tmp_path):
        expected = place_espota(tmp_path / "real", "tools")
        assert find_espota([tmp_path / "missing", tmp_path / "real"]) == expected

    def test_path_fallback(self, tmp_path):
        """Should fall back to PATH."""
        with patch(
            "firmware_codegen.toolchains.ota.shutil.which",
            return_value="/usr/local/bin/espota.py",
        ):
            found = find_espota([tmp_path])
        assert str(found) == "/usr/local/bin/espota.py"

    def test_not_found(self, tmp_path):
        """Should raise FlashUtilityNotFoundError listing searched roots."""
        with patch("firmware_codegen.toolchains.ota.shutil.which", return_value=None):
            with pytest.raises(FlashUtilityNotFoundError) as exc_info:
                find_espota([tmp_path / "a"])

        error = exc_info.value
        assert error.code == "flash_utility_not_found"
        assert error.searched == [tmp_path / "a"]
        assert str(tmp_path / "a") in error.message


class TestOtaPortFor:
    """Tests for ota_port_for function."""

    def test_esp32(self):
        assert ota_port_for("esp32:esp32:esp32") == ESP32_OTA_PORT

    def test_esp8266(self):
        assert ota_port_for("esp8266:esp8266:nodemcuv2") == ESP8266_OTA_PORT

    def test_unknown_vendor_defaults_to_esp32(self):
        """Should fall back to the ESP32 port for other cores."""
        assert ota_port_for("vendor:arch:board") == 3232
