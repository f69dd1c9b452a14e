"""Abstract base class for build toolchain strategies.

A strategy wraps one external toolchain family and covers its whole
lifecycle: availability probing, dependency priming, compiling,
artifact discovery and OTA upload.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from firmware_codegen.errors import (
    ArtifactNotFoundError,
    CompileError,
    ToolchainUnavailableError,
    WorkspaceError,
)
from firmware_codegen.runner import BuildContext, CommandResult, run_command, tail_output
from firmware_codegen.types import PrimingReport

logger = logging.getLogger(__name__)

BINARY_SUFFIX = ".bin"

# Companion images written next to the application binary; ranked last
AUXILIARY_MARKERS = (".bootloader.", ".partitions.", ".merged.", "boot_app0")

# PlatformIO writes its companion images under plain names
AUXILIARY_NAMES = frozenset({"bootloader.bin", "partitions.bin"})


@dataclass(frozen=True)
class BuildResult:
    """Result of a successful firmware build.

    Attributes:
        binary_path: Absolute path to the compiled binary.
        board: Board identifier used for the build.
        size_bytes: Binary size in bytes.
    """

    binary_path: Path
    board: str | None
    size_bytes: int


def is_auxiliary_image(path: Path) -> bool:
    """Return True for bootloader/partition/merged images."""
    name = path.name.lower()
    if name in AUXILIARY_NAMES:
        return True
    return any(marker in name for marker in AUXILIARY_MARKERS)


def discover_artifact(
    search_dir: Path,
    suffix: str = BINARY_SUFFIX,
    filename: str | None = None,
) -> Path:
    """Find the compiled binary under a toolchain output directory.

    Candidates are ordered by relative path so the choice does not depend
    on filesystem iteration order. Application images win over
    auxiliary images.

    Args:
        search_dir: Directory to walk recursively.
        suffix: Binary file extension.
        filename: Exact file name to look for instead of any suffix match.

    Returns:
        Path of the chosen binary.

    Raises:
        ArtifactNotFoundError: If no file matches.
    """
    pattern = filename or f"*{suffix}"
    if not search_dir.is_dir():
        raise ArtifactNotFoundError(search_dir, pattern)

    candidates: list[Path] = []
    for path in sorted(search_dir.rglob(pattern)):
        if path.is_file():
            candidates.append(path)

    if not candidates:
        raise ArtifactNotFoundError(search_dir, pattern)

    # sorted() is stable, so lexicographic order holds within each rank
    chosen = sorted(candidates, key=is_auxiliary_image)[0]
    logger.debug("Discovered artifact %s (%d candidates)", chosen, len(candidates))
    return chosen.resolve()


def stat_binary(binary_path: Path) -> int:
    """Return the size of a binary.

    Raises:
        WorkspaceError: If the file cannot be stat'ed.
    """
    try:
        return binary_path.stat().st_size
    except OSError as e:
        raise WorkspaceError(f"cannot stat binary: {e}", path=binary_path) from e


def ensure_directory(path: Path) -> Path:
    """Create a directory, wrapping failures as WorkspaceError."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorkspaceError(f"failed to create directory {path}: {e}", path=path) from e
    return path


class BuildStrategy(ABC):
    """Abstract base class for toolchain strategies."""

    # Registry key (e.g. 'platformio')
    key: str = "base"

    # Display name (e.g. 'PlatformIO')
    name: str = "base"

    # Executable names to probe on PATH, in preference order
    executables: tuple[str, ...] = ()

    def __init__(self, board: str | None = None) -> None:
        self.board = board

    def find_executable(self) -> str | None:
        """Locate the toolchain executable on PATH."""
        for candidate in self.executables:
            path = shutil.which(candidate)
            if path:
                return path
        return None

    def is_available(self) -> bool:
        """Check whether the toolchain is installed.

        Probed live on every call, since tools can be installed or removed
        while a service is running.
        """
        return self.find_executable() is not None

    def executable(self) -> str:
        """Return the executable path or raise if it vanished."""
        path = self.find_executable()
        if path is None:
            names = " or ".join(self.executables) or self.key
            raise ToolchainUnavailableError(f"{self.name} is not installed ({names} not on PATH)")
        return path

    @classmethod
    @abstractmethod
    def output_dir(cls, project_dir: Path) -> Path:
        """Directory where this toolchain writes its binaries."""
        ...

    @classmethod
    def find_binary(cls, project_dir: Path) -> Path:
        """Locate the application binary a previous build left behind.

        Raises:
            ArtifactNotFoundError: If the output directory holds no binary.
        """
        return discover_artifact(cls.output_dir(project_dir))

    def prime_dependencies(self, ctx: BuildContext) -> PrimingReport:
        """Install board cores and libraries before a build.

        Best-effort: failures are reported, never raised. The default
        does nothing.
        """
        return PrimingReport(tool=self.key)

    @abstractmethod
    def build(self, project_dir: Path, ctx: BuildContext) -> BuildResult:
        """Compile the project at project_dir.

        Raises:
            CompileError: If the compiler exits non-zero.
            ArtifactNotFoundError: If no binary was produced.
        """
        ...

    @abstractmethod
    def upload(self, project_dir: Path, target_address: str, ctx: BuildContext) -> None:
        """Compile the project and flash it to a device over the network.

        Raises:
            UploadError: If flashing fails.
        """
        ...

    # -------------------------------------------------------------------------
    # Common helpers shared by all strategies
    # -------------------------------------------------------------------------

    def _run_compiler(
        self,
        command: list[str],
        ctx: BuildContext,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run a compile command, raising CompileError on failure."""
        result = run_command(command, ctx, cwd=cwd)
        if not result.ok:
            tail = tail_output(result.output)
            logger.error("%s build failed (exit %d): %s", self.name, result.returncode, tail)
            raise CompileError(self.name, result.returncode, tail)
        logger.info(
            "%s build succeeded in %.1fs, output tail: %s",
            self.name,
            result.duration,
            tail_output(result.output),
        )
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(board={self.board!r})"


__all__ = [
    "AUXILIARY_MARKERS",
    "AUXILIARY_NAMES",
    "BINARY_SUFFIX",
    "BuildResult",
    "BuildStrategy",
    "discover_artifact",
    "ensure_directory",
    "is_auxiliary_image",
    "stat_binary",
]
