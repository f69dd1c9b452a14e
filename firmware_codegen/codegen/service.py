"""Firmware generation service.

This module provides the high-level pipeline API:
- generate(): source → config → toolchain → compile → artifact
- upload(): generate, then flash over the network
- Out-of-band lookup and cleanup of build workspaces by build ID

Each build gets a private workspace named by its build ID. A failure at
any stage after the workspace exists removes it before the error
reaches the caller. upload() keeps the workspace alive across compile
and flash and removes it afterwards.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import TYPE_CHECKING

from firmware_codegen.errors import (
    ArtifactNotFoundError,
    BuildCancelledError,
    BuildNotFoundError,
    CodegenError,
    PipelineError,
    SourceRepositoryError,
)
from firmware_codegen.runner import BuildContext
from firmware_codegen.source import SharedSource, apply_config, cleanup_workspace
from firmware_codegen.toolchains import (
    BuildStrategy,
    get_strategy_class,
    list_available,
    priority_order,
    resolve,
)
from firmware_codegen.toolchains.base import discover_artifact
from firmware_codegen.types import BuildStage, CleanupResult, SourceSyncResult

if TYPE_CHECKING:
    from firmware_codegen.codegen.schema import BuildRequest
    from firmware_codegen.config import Settings

logger = logging.getLogger(__name__)

BUILD_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# Used only when the OS random source is unavailable
_fallback_ids = count(1)
_fallback_lock = threading.Lock()


def generate_build_id() -> str:
    """Return a new build ID: ``<unix-seconds>-<pid>-<random hex>``.

    The timestamp keeps IDs roughly sortable, the pid separates worker
    processes sharing a work directory, and the random suffix separates
    builds started within the same second.
    """
    try:
        suffix = os.urandom(4).hex()
    except NotImplementedError:
        with _fallback_lock:
            suffix = f"n{next(_fallback_ids):07x}"
    return f"{int(time.time())}-{os.getpid()}-{suffix}"


def is_valid_build_id(build_id: str) -> bool:
    """Build IDs are path components; reject anything else."""
    return bool(BUILD_ID_PATTERN.match(build_id))


@dataclass(frozen=True)
class GenerateResult:
    """Result of a successful generate() call.

    Attributes:
        build_id: Build ID naming the workspace.
        binary_path: Absolute path to the compiled binary.
        binary_size: Binary size in bytes.
        tool_name: Display name of the toolchain used.
        tool_key: Registry key of the toolchain used.
        board: Board identifier reported by the toolchain.
        workspace: Path of the build workspace.
    """

    build_id: str
    binary_path: Path
    binary_size: int
    tool_name: str
    tool_key: str
    board: str | None
    workspace: Path


@dataclass(frozen=True)
class UploadResult:
    """Result of a successful upload() call."""

    build_id: str
    target_address: str
    tool_name: str
    binary_size: int


@contextmanager
def _stage(intent: str, stage: BuildStage, build_id: str) -> Iterator[None]:
    """Wrap failures inside a pipeline stage with the stage's intent.

    ``stage`` is the last stage reached before the wrapped step.
    """
    try:
        yield
    except PipelineError:
        raise
    except CodegenError as e:
        logger.error("Build %s: %s: %s", build_id, intent, e.message)
        raise PipelineError(intent, stage, e, build_id=build_id) from e


def _reached(build_id: str, stage: BuildStage) -> None:
    logger.debug("Build %s: %s", build_id, stage.value)


class CodegenService:
    """Firmware build pipeline bound to one work directory.

    A single instance can serve concurrent requests from several
    threads: workspaces are disjoint by build ID, and the shared
    checkout is guarded by SharedSource.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        source: SharedSource | None = None,
    ) -> None:
        if settings is None:
            from firmware_codegen.config import get_settings

            settings = get_settings()
        self.settings = settings
        self.source = source or SharedSource(
            base_dir=settings.work_dir,
            repo_url=settings.repo_url,
            repo_name=settings.repo_name,
            git_timeout=settings.git_timeout,
        )

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _with_defaults(self, request: BuildRequest) -> BuildRequest:
        """Fill request fields the caller left unset from settings."""
        update: dict[str, object] = {}
        if "backend_port" not in request.model_fields_set:
            update["backend_port"] = self.settings.default_backend_port
        if request.build_tool is None and self.settings.preferred_tool:
            update["build_tool"] = self.settings.preferred_tool.lower()
        return request.model_copy(update=update) if update else request

    def _resolve_strategy(self, request: BuildRequest) -> BuildStrategy:
        return resolve(
            preferred=request.build_tool,
            board=request.board or self.settings.default_board,
            settings=self.settings,
        )

    def generate(
        self,
        request: BuildRequest,
        ctx: BuildContext | None = None,
    ) -> GenerateResult:
        """Build firmware for one device.

        Args:
            request: Per-device build request.
            ctx: Build context; defaults to one bounded by build_timeout.

        Returns:
            GenerateResult for the compiled binary. The workspace is kept
            until cleanup_build() is called.

        Raises:
            PipelineError: Wrapping the failure of whichever stage failed.
        """
        ctx = ctx or BuildContext(timeout=self.settings.build_timeout)
        request = self._with_defaults(request)
        build_id = generate_build_id()
        logger.info("Starting build %s for device %s", build_id, request.device_ip)

        try:
            workspace = self.source.prepare_workspace(build_id, ctx)
        except (SourceRepositoryError, BuildCancelledError) as e:
            logger.error("Build %s: failed to prepare source repository: %s", build_id, e.message)
            raise PipelineError(
                "failed to prepare source repository", BuildStage.REQUESTED, e, build_id=build_id
            ) from e
        except CodegenError as e:
            # isolate_for_build removes its own partial copy
            logger.error("Build %s: failed to create build copy: %s", build_id, e.message)
            raise PipelineError(
                "failed to create build copy", BuildStage.REQUESTED, e, build_id=build_id
            ) from e

        _reached(build_id, BuildStage.SOURCE_PREPARED)

        try:
            return self._run_stages(build_id, workspace, request, ctx)
        except BaseException:
            cleanup_workspace(workspace)
            raise

    def _run_stages(
        self,
        build_id: str,
        workspace: Path,
        request: BuildRequest,
        ctx: BuildContext,
    ) -> GenerateResult:
        with _stage("failed to replace config", BuildStage.SOURCE_PREPARED, build_id):
            apply_config(workspace, request, self.settings.config_header)
        _reached(build_id, BuildStage.CONFIG_APPLIED)

        with _stage("no build tool available", BuildStage.CONFIG_APPLIED, build_id):
            strategy = self._resolve_strategy(request)
        _reached(build_id, BuildStage.TOOL_RESOLVED)

        with _stage("firmware build failed", BuildStage.TOOL_RESOLVED, build_id):
            report = strategy.prime_dependencies(ctx)
            if not report.ok:
                logger.warning(
                    "Build %s: %d dependency step(s) failed, compiling anyway",
                    build_id,
                    len(report.failures),
                )
            _reached(build_id, BuildStage.COMPILING)
            built = strategy.build(workspace, ctx)
        _reached(build_id, BuildStage.ARTIFACT_LOCATED)

        logger.info(
            "Build %s done: %s (%d bytes) with %s",
            build_id,
            built.binary_path,
            built.size_bytes,
            strategy.name,
        )
        return GenerateResult(
            build_id=build_id,
            binary_path=built.binary_path,
            binary_size=built.size_bytes,
            tool_name=strategy.name,
            tool_key=strategy.key,
            board=built.board,
            workspace=workspace,
        )

    def upload(
        self,
        request: BuildRequest,
        target_address: str | None = None,
        ctx: BuildContext | None = None,
    ) -> UploadResult:
        """Build firmware and flash it to a device over the network.

        Args:
            request: Per-device build request.
            target_address: Device address; defaults to request.device_ip.
            ctx: Build context; defaults to one bounded by upload_timeout.

        Raises:
            PipelineError: Wrapping the failure of whichever stage failed.
        """
        ctx = ctx or BuildContext(timeout=self.settings.upload_timeout)
        request = self._with_defaults(request)
        target_address = target_address or request.device_ip

        generated = self.generate(request, ctx)
        try:
            with _stage("OTA upload failed", BuildStage.DONE, generated.build_id):
                strategy = self._resolve_strategy(request)
                logger.info(
                    "Build %s: uploading to %s with %s",
                    generated.build_id,
                    target_address,
                    strategy.name,
                )
                _reached(generated.build_id, BuildStage.UPLOADING)
                strategy.upload(generated.workspace, target_address, ctx)
                _reached(generated.build_id, BuildStage.UPLOADED)
        finally:
            self.cleanup_build(generated.build_id)

        return UploadResult(
            build_id=generated.build_id,
            target_address=target_address,
            tool_name=strategy.name,
            binary_size=generated.binary_size,
        )

    # -------------------------------------------------------------------------
    # Out-of-band accessors
    # -------------------------------------------------------------------------

    def workspace_path(self, build_id: str) -> Path:
        """Return where the workspace for build_id lives.

        Raises:
            BuildNotFoundError: If build_id is not a valid build ID.
        """
        if not is_valid_build_id(build_id):
            raise BuildNotFoundError(build_id)
        return self.source.builds_dir / build_id

    def get_binary_path(self, build_id: str) -> Path:
        """Find the binary of a finished build.

        Toolchain output directories are searched first, in priority
        order, then the whole workspace.

        Raises:
            BuildNotFoundError: If the workspace does not exist.
            ArtifactNotFoundError: If it holds no binary.
        """
        workspace = self.workspace_path(build_id)
        if not workspace.is_dir():
            raise BuildNotFoundError(build_id)

        for key in priority_order():
            try:
                return get_strategy_class(key).find_binary(workspace)
            except ArtifactNotFoundError:
                continue
        return discover_artifact(workspace)

    def cleanup_build(self, build_id: str) -> CleanupResult:
        """Remove a build workspace. Never raises for I/O failures."""
        result = cleanup_workspace(self.workspace_path(build_id))
        if result.removed:
            logger.info("Cleaned up build %s", build_id)
        return result

    def list_available_tools(self) -> list[str]:
        """Return display names of installed toolchains."""
        return list_available(self.settings)

    def sync_source(self, ctx: BuildContext | None = None) -> SourceSyncResult:
        """Clone or refresh the shared checkout without building."""
        return self.source.sync(ctx)


__all__ = [
    "BUILD_ID_PATTERN",
    "CodegenService",
    "GenerateResult",
    "UploadResult",
    "generate_build_id",
    "is_valid_build_id",
]
