"""Config header templating for firmware workspaces.

This module handles:
- Rewriting ``#define NAME <value>`` lines with per-device values
- Decomposing the device IP into a C initializer list
- Uncommenting feature macros (static IP, backend selection)

Rewrites are line-anchored regex replacements, so applying the same
request twice yields the same file as applying it once. Macros missing
from the template are skipped, which lets the template evolve without
breaking builds.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from firmware_codegen.errors import ConfigTemplateError

if TYPE_CHECKING:
    from firmware_codegen.codegen.schema import BuildRequest

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_HEADER = Path("include") / "config.h"

# Macro that enables the static IP block in the template
STATIC_IP_ENABLE_MACRO = "STATIC_IP"
STATIC_IP_ADDRESS_MACRO = "STATIC_IP_ADDRESS"

# Macro that points the firmware at this backend's API
BACKEND_SELECT_MACRO = "USE_GO_BACKEND"


@dataclass(frozen=True)
class MacroRule:
    """How one request field maps onto a ``#define`` in the header.

    Attributes:
        macro: Macro name in the header.
        field: BuildRequest attribute holding the value.
        quoted: Render the value as a C string literal.
        replace_all: Rewrite every definition, not just the first.
    """

    macro: str
    field: str
    quoted: bool = True
    replace_all: bool = False


# WiFi macros can appear more than once (e.g. per #ifdef branch)
MACRO_RULES: tuple[MacroRule, ...] = (
    MacroRule("BACKEND_HOST", "backend_host"),
    MacroRule("BACKEND_PORT", "backend_port", quoted=False),
    MacroRule("TOKEN", "token"),
    MacroRule("WIFI_SSID", "wifi_ssid", replace_all=True),
    MacroRule("WIFI_PASSWORD", "wifi_password", replace_all=True),
    MacroRule("DEVICE_NAME", "device_name"),
)


@dataclass
class ConfigApplyResult:
    """Result of applying a request to a config header.

    Attributes:
        config_path: Path of the rewritten header.
        changed: Whether the file content changed.
        applied: Macros that were found and rewritten or uncommented.
        skipped: Macros with a value that the template does not define.
    """

    config_path: Path
    changed: bool
    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _define_pattern(macro: str) -> re.Pattern[str]:
    return re.compile(
        rf"^([ \t]*#define[ \t]+{re.escape(macro)}[ \t]+)([^\r\n]+?)(\r?)$",
        re.MULTILINE,
    )


def _commented_define_pattern(macro: str) -> re.Pattern[str]:
    return re.compile(
        rf"^([ \t]*)//[ \t]*(#define[ \t]+{re.escape(macro)}(?![A-Za-z0-9_])[^\r\n]*)(?=\r?$)",
        re.MULTILINE,
    )


def c_string(value: str) -> str:
    """Render a value as a C string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def replace_define(content: str, macro: str, value: str) -> tuple[str, int]:
    """Rewrite the first ``#define macro ...`` line.

    Returns:
        Tuple of (new content, number of lines rewritten).
    """
    return _define_pattern(macro).subn(
        lambda m: f"{m.group(1)}{value}{m.group(3)}", content, count=1
    )


def replace_all_defines(content: str, macro: str, value: str) -> tuple[str, int]:
    """Rewrite every ``#define macro ...`` line."""
    return _define_pattern(macro).subn(
        lambda m: f"{m.group(1)}{value}{m.group(3)}", content
    )


def uncomment_define(content: str, macro: str) -> tuple[str, int]:
    """Activate ``// #define macro ...`` lines.

    Already-active definitions are left untouched.
    """
    return _commented_define_pattern(macro).subn(r"\1\2", content)


def ip_to_octets(ip: str) -> str:
    """Convert a dotted-quad address to a C initializer list.

    ``"192.168.1.50"`` becomes ``"192, 168, 1, 50"``. Anything that does
    not split into exactly four parts yields an empty string.
    """
    parts = ip.split(".")
    if len(parts) != 4:
        return ""
    return ", ".join(parts)


def render_config(content: str, request: BuildRequest) -> tuple[str, list[str], list[str]]:
    """Apply a request to header content.

    Args:
        content: Original header text.
        request: Build request with the values to inject.

    Returns:
        Tuple of (new content, applied macros, skipped macros).
    """
    applied: list[str] = []
    skipped: list[str] = []

    def record(macro: str, count: int) -> None:
        if count:
            applied.append(macro)
        else:
            skipped.append(macro)

    for rule in MACRO_RULES:
        raw = getattr(request, rule.field)
        if raw is None or raw == "":
            continue
        if isinstance(raw, int):
            if raw <= 0:
                continue
            value = str(raw)
        else:
            value = c_string(raw) if rule.quoted else raw

        if rule.replace_all:
            content, count = replace_all_defines(content, rule.macro, value)
        else:
            content, count = replace_define(content, rule.macro, value)
        record(rule.macro, count)

    octets = ip_to_octets(request.device_ip)
    if octets:
        content, count = replace_all_defines(content, STATIC_IP_ADDRESS_MACRO, octets)
        record(STATIC_IP_ADDRESS_MACRO, count)
        content, count = uncomment_define(content, STATIC_IP_ENABLE_MACRO)
        if count or _define_pattern(STATIC_IP_ENABLE_MACRO).search(content):
            applied.append(STATIC_IP_ENABLE_MACRO)
    else:
        logger.warning(
            "Device IP %r is not a dotted quad, static IP left unchanged",
            request.device_ip,
        )

    content, count = uncomment_define(content, BACKEND_SELECT_MACRO)
    if count:
        applied.append(BACKEND_SELECT_MACRO)

    return content, applied, skipped


def apply_config(
    workspace_dir: Path,
    request: BuildRequest,
    config_header: Path = DEFAULT_CONFIG_HEADER,
) -> ConfigApplyResult:
    """Rewrite a workspace's config header in place.

    Args:
        workspace_dir: Root of the build workspace.
        request: Build request with the values to inject.
        config_header: Header path relative to the workspace.

    Returns:
        ConfigApplyResult describing what changed.

    Raises:
        ConfigTemplateError: If the header cannot be read or written.
    """
    config_path = workspace_dir / config_header

    try:
        # newline="" keeps CRLF headers byte-identical outside rewritten values
        with config_path.open(encoding="utf-8", newline="") as f:
            original = f.read()
    except OSError as e:
        raise ConfigTemplateError(
            f"failed to read {config_header}: {e}", config_path=config_path
        ) from e

    modified, applied, skipped = render_config(original, request)
    changed = modified != original

    if skipped:
        logger.debug("Macros not present in %s: %s", config_header, ", ".join(skipped))

    if not changed:
        logger.warning("No changes were made to %s", config_path)
    else:
        try:
            with config_path.open("w", encoding="utf-8", newline="") as f:
                f.write(modified)
        except OSError as e:
            raise ConfigTemplateError(
                f"failed to write {config_header}: {e}", config_path=config_path
            ) from e

    logger.info(
        "Config applied to %s (backend=%s:%d, ssid=%s, device_ip=%s)",
        config_path,
        request.backend_host,
        request.backend_port,
        request.wifi_ssid,
        request.device_ip,
    )

    return ConfigApplyResult(
        config_path=config_path,
        changed=changed,
        applied=applied,
        skipped=skipped,
    )


__all__ = [
    "BACKEND_SELECT_MACRO",
    "DEFAULT_CONFIG_HEADER",
    "MACRO_RULES",
    "STATIC_IP_ADDRESS_MACRO",
    "STATIC_IP_ENABLE_MACRO",
    "ConfigApplyResult",
    "MacroRule",
    "apply_config",
    "c_string",
    "ip_to_octets",
    "render_config",
    "replace_all_defines",
    "replace_define",
    "uncomment_define",
]
