"""Exception types for the firmware build pipeline.

Every exception carries a stable ``code`` attribute so that callers
(CLI, transport layers) can branch on the failure kind without parsing
messages. Codes follow the taxonomy below:

- environment: ``no_build_tool``, ``flash_utility_not_found``
- compile: ``compile_failed``
- artifact: ``artifact_not_found``
- resource: ``workspace_error``, ``config_error``, ``source_error``
- upload: ``upload_failed``
- execution: ``execution_error``, ``cancelled``
- lookup: ``build_not_found``
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from firmware_codegen.types import BuildStage


class CodegenError(Exception):
    """Base error for all firmware codegen operations."""

    def __init__(self, message: str, code: str = "codegen_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class CommandExecutionError(CodegenError):
    """Raised when a subprocess cannot be started at all."""

    def __init__(self, message: str, command: str | None = None) -> None:
        super().__init__(message, code="execution_error")
        self.command = command


class BuildCancelledError(CodegenError):
    """Raised when a build context is cancelled or its deadline passes."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message, code="cancelled")


class SourceRepositoryError(CodegenError):
    """Raised when the shared firmware source cannot be obtained."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="source_error")


class WorkspaceError(CodegenError):
    """Raised on directory creation, copy or stat failures."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message, code="workspace_error")
        self.path = path


class ConfigTemplateError(CodegenError):
    """Raised when the config header cannot be read or written."""

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        super().__init__(message, code="config_error")
        self.config_path = config_path


class ToolchainUnavailableError(CodegenError):
    """Raised when no build toolchain is installed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="no_build_tool")


class CompileError(CodegenError):
    """Raised when the compiler exits with a non-zero status."""

    def __init__(self, tool: str, exit_code: int, output_tail: str) -> None:
        super().__init__(
            f"{tool} build failed with exit code {exit_code}\nOutput: {output_tail}",
            code="compile_failed",
        )
        self.tool = tool
        self.exit_code = exit_code
        self.output_tail = output_tail


class ArtifactNotFoundError(CodegenError):
    """Raised when a compile succeeded but produced no binary."""

    def __init__(self, search_dir: Path, pattern: str) -> None:
        super().__init__(
            f"build succeeded but binary not found: no {pattern} file in {search_dir}",
            code="artifact_not_found",
        )
        self.search_dir = search_dir
        self.pattern = pattern


class FlashUtilityNotFoundError(CodegenError):
    """Raised when the OTA flashing utility cannot be located."""

    def __init__(self, utility: str, searched: list[Path]) -> None:
        locations = ", ".join(str(p) for p in searched) or "(none)"
        super().__init__(
            f"{utility} not found, cannot perform OTA upload "
            f"(searched: {locations}, PATH)",
            code="flash_utility_not_found",
        )
        self.utility = utility
        self.searched = searched


class UploadError(CodegenError):
    """Raised when the flashing command exits with a non-zero status."""

    def __init__(self, tool: str, target: str, exit_code: int, output_tail: str) -> None:
        super().__init__(
            f"{tool} OTA upload to {target} failed with exit code {exit_code}\n"
            f"Output: {output_tail}",
            code="upload_failed",
        )
        self.tool = tool
        self.target = target
        self.exit_code = exit_code
        self.output_tail = output_tail


class BuildNotFoundError(CodegenError):
    """Raised when a build ID does not map to an existing workspace."""

    def __init__(self, build_id: str) -> None:
        super().__init__(f"build {build_id} not found", code="build_not_found")
        self.build_id = build_id


class PipelineError(CodegenError):
    """A stage failure, wrapped with the intent of that stage.

    The ``code`` is taken from the underlying error so that callers can
    still tell a compile failure from a missing artifact.
    """

    def __init__(
        self,
        intent: str,
        stage: BuildStage,
        cause: CodegenError,
        build_id: str | None = None,
    ) -> None:
        super().__init__(f"{intent}: {cause.message}", code=cause.code)
        self.intent = intent
        self.stage = stage
        self.cause = cause
        self.build_id = build_id


__all__ = [
    "ArtifactNotFoundError",
    "BuildCancelledError",
    "BuildNotFoundError",
    "CodegenError",
    "CommandExecutionError",
    "CompileError",
    "ConfigTemplateError",
    "FlashUtilityNotFoundError",
    "PipelineError",
    "SourceRepositoryError",
    "ToolchainUnavailableError",
    "UploadError",
    "WorkspaceError",
]
