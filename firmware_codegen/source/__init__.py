"""Firmware source handling.

This module handles:
- The shared template checkout and per-build workspaces (repo)
- Injecting per-device values into the config header (config_header)
"""

from firmware_codegen.source.config_header import ConfigApplyResult, apply_config
from firmware_codegen.source.repo import (
    SharedSource,
    cleanup_workspace,
    ensure_source,
    isolate_for_build,
)

__all__ = [
    "ConfigApplyResult",
    "SharedSource",
    "apply_config",
    "cleanup_workspace",
    "ensure_source",
    "isolate_for_build",
]
