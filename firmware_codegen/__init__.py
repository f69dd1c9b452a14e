"""Firmware Codegen - build orchestration for device-specific ESP firmware.

This package clones a firmware source template, injects per-device
configuration into its config header, compiles it with whichever
toolchain is installed (PlatformIO or Arduino CLI), and optionally
flashes the result to a device over the air.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
