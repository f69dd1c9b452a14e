"""Firmware source repository management.

This module handles:
- Cloning the firmware source template (shallow) on first use
- Fast-forward pulls on later uses (failures fall back to the stale copy)
- Copying the checkout into a private per-build workspace
- Removing workspaces

SharedSource serializes refresh-then-copy with a lock so that a build
never copies a tree while another build is pulling into it.
"""

from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path

from firmware_codegen.errors import (
    CommandExecutionError,
    SourceRepositoryError,
    WorkspaceError,
)
from firmware_codegen.runner import BuildContext, run_command, tail_output
from firmware_codegen.types import CleanupResult, SourceSyncResult

logger = logging.getLogger(__name__)

BUILDS_DIRNAME = "builds"


def is_checkout(path: Path) -> bool:
    """Return True if path holds a git checkout."""
    return (path / ".git").exists()


def clone_source(repo_url: str, source_dir: Path, ctx: BuildContext) -> None:
    """Shallow-clone the template repository.

    Raises:
        SourceRepositoryError: If the clone fails.
    """
    logger.info("Cloning firmware source repository %s into %s", repo_url, source_dir)
    try:
        source_dir.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SourceRepositoryError(f"failed to create base directory: {e}") from e

    try:
        result = run_command(
            ["git", "clone", "--depth", "1", repo_url, str(source_dir)], ctx
        )
    except CommandExecutionError as e:
        raise SourceRepositoryError(f"git clone failed: {e}") from e
    except BaseException:
        # Cancelled mid-clone; a half-written .git would pass for a checkout
        shutil.rmtree(source_dir, ignore_errors=True)
        raise

    if not result.ok:
        # A failed clone can leave a partial directory behind
        shutil.rmtree(source_dir, ignore_errors=True)
        raise SourceRepositoryError(
            f"git clone failed with exit code {result.returncode}\n"
            f"Output: {tail_output(result.output)}"
        )
    logger.info("Repository cloned successfully to %s", source_dir)


def pull_source(source_dir: Path, ctx: BuildContext) -> str | None:
    """Fast-forward the checkout.

    Returns:
        None on success, otherwise a warning message. Pull failures
        never raise: the existing checkout stays usable.
    """
    logger.info("Pulling latest firmware source in %s", source_dir)
    try:
        result = run_command(["git", "-C", str(source_dir), "pull", "--ff-only"], ctx)
    except CommandExecutionError as e:
        warning = f"git pull failed: {e}"
    else:
        if result.ok:
            return None
        warning = (
            f"git pull failed with exit code {result.returncode}: "
            f"{tail_output(result.output, 200).strip()}"
        )
    logger.warning("%s; using existing source", warning)
    return warning


def ensure_source(
    base_dir: Path,
    repo_url: str,
    repo_name: str,
    ctx: BuildContext | None = None,
) -> SourceSyncResult:
    """Make sure a checkout exists at base_dir/repo_name.

    Clones on first use, pulls afterwards.

    Args:
        base_dir: Work directory holding the checkout.
        repo_url: Template repository URL.
        repo_name: Directory name of the checkout.
        ctx: Build context bounding the git commands.

    Returns:
        SourceSyncResult describing what happened.

    Raises:
        SourceRepositoryError: If no checkout exists and cloning fails.
        BuildCancelledError: If the context is cancelled.
    """
    ctx = ctx or BuildContext()
    source_dir = base_dir / repo_name

    if not is_checkout(source_dir):
        clone_source(repo_url, source_dir, ctx)
        return SourceSyncResult(source_dir=source_dir, cloned=True, refreshed=True)

    warning = pull_source(source_dir, ctx)
    return SourceSyncResult(
        source_dir=source_dir,
        cloned=False,
        refreshed=warning is None,
        warning=warning,
    )


def isolate_for_build(source_dir: Path, build_id: str) -> Path:
    """Copy the checkout into a workspace owned by one build.

    The workspace lives at ``<source_dir parent>/builds/<build_id>``.
    A partial copy is removed on failure; an existing directory is never
    touched.

    Raises:
        WorkspaceError: If the copy fails.
    """
    build_dir = source_dir.parent / BUILDS_DIRNAME / build_id

    try:
        build_dir.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorkspaceError(f"failed to create builds directory: {e}", path=build_dir) from e

    try:
        shutil.copytree(source_dir, build_dir, symlinks=True)
    except FileExistsError as e:
        # Owned by another build; leave it alone
        raise WorkspaceError(f"build workspace already exists: {e}", path=build_dir) from e
    except (OSError, shutil.Error) as e:
        shutil.rmtree(build_dir, ignore_errors=True)
        raise WorkspaceError(f"failed to copy repo for build: {e}", path=build_dir) from e

    logger.info("Created build copy %s at %s", build_id, build_dir)
    return build_dir


def cleanup_workspace(build_dir: Path) -> CleanupResult:
    """Remove a build workspace.

    Failures are logged and reported in the result, never raised.
    """
    if not build_dir.exists():
        return CleanupResult(path=build_dir, removed=False)
    try:
        shutil.rmtree(build_dir)
    except OSError as e:
        logger.warning("Failed to cleanup build directory %s: %s", build_dir, e)
        return CleanupResult(path=build_dir, removed=False, error=str(e))
    logger.debug("Removed build directory %s", build_dir)
    return CleanupResult(path=build_dir, removed=True)


class SharedSource:
    """The shared, read-mostly checkout of the firmware template.

    One instance is shared by all builds of a service. The lock covers
    both refresh and copy.
    """

    def __init__(
        self,
        base_dir: Path,
        repo_url: str,
        repo_name: str,
        git_timeout: float | None = None,
    ) -> None:
        self.base_dir = base_dir
        self.repo_url = repo_url
        self.repo_name = repo_name
        self.git_timeout = git_timeout
        self._lock = threading.Lock()
        self.last_sync: SourceSyncResult | None = None

    @property
    def source_dir(self) -> Path:
        return self.base_dir / self.repo_name

    @property
    def builds_dir(self) -> Path:
        return self.base_dir / BUILDS_DIRNAME

    def _git_ctx(self, ctx: BuildContext | None) -> BuildContext:
        if ctx is None:
            return BuildContext(timeout=self.git_timeout)
        return ctx.child(timeout=self.git_timeout)

    def sync(self, ctx: BuildContext | None = None) -> SourceSyncResult:
        """Clone or refresh the checkout."""
        with self._lock:
            return self._sync_locked(ctx)

    def _sync_locked(self, ctx: BuildContext | None) -> SourceSyncResult:
        result = ensure_source(
            self.base_dir, self.repo_url, self.repo_name, ctx=self._git_ctx(ctx)
        )
        self.last_sync = result
        return result

    def prepare_workspace(self, build_id: str, ctx: BuildContext | None = None) -> Path:
        """Refresh the checkout and copy it for one build.

        Raises:
            SourceRepositoryError: If no checkout can be obtained.
            WorkspaceError: If the copy fails.
        """
        with self._lock:
            sync = self._sync_locked(ctx)
            return isolate_for_build(sync.source_dir, build_id)


__all__ = [
    "BUILDS_DIRNAME",
    "SharedSource",
    "cleanup_workspace",
    "clone_source",
    "ensure_source",
    "is_checkout",
    "isolate_for_build",
    "pull_source",
]
