"""Firmware build pipeline.

This module handles:
- Build request schema and file loading (schema, io)
- Orchestrating source, config, toolchain and upload stages (service)
"""

from firmware_codegen.codegen.io import load_request
from firmware_codegen.codegen.schema import BuildRequest
from firmware_codegen.codegen.service import (
    CodegenService,
    GenerateResult,
    UploadResult,
    generate_build_id,
)

__all__ = [
    "BuildRequest",
    "CodegenService",
    "GenerateResult",
    "UploadResult",
    "generate_build_id",
    "load_request",
]
