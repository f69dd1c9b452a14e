"""Shared type definitions for firmware_codegen.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class BuildStage(str, Enum):
    """Stage of a single build in the pipeline state machine."""

    REQUESTED = "requested"
    SOURCE_PREPARED = "source_prepared"
    CONFIG_APPLIED = "config_applied"
    TOOL_RESOLVED = "tool_resolved"
    COMPILING = "compiling"
    COMPILED = "compiled"
    ARTIFACT_LOCATED = "artifact_located"
    DONE = "done"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    """Outcome of a best-effort step whose failure does not stop a build."""

    name: str
    ok: bool
    message: str = ""


@dataclass
class PrimingReport:
    """Outcome of toolchain dependency priming."""

    tool: str
    steps: list[StepOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failures(self) -> list[StepOutcome]:
        return [step for step in self.steps if not step.ok]


@dataclass(frozen=True)
class SourceSyncResult:
    """Result of ensuring the shared source checkout.

    Attributes:
        source_dir: Path to the checkout.
        cloned: True if the checkout was freshly cloned.
        refreshed: True if a pull succeeded.
        warning: Pull failure message when the stale checkout is used.
    """

    source_dir: Path
    cloned: bool
    refreshed: bool
    warning: str | None = None


@dataclass(frozen=True)
class CleanupResult:
    """Result of removing a build workspace."""

    path: Path
    removed: bool
    error: str | None = None


__all__ = [
    "BuildStage",
    "CleanupResult",
    "PrimingReport",
    "SourceSyncResult",
    "StepOutcome",
]
