"""PlatformIO build strategy.

PlatformIO resolves platforms, frameworks and libraries itself from the
project's platformio.ini, so no separate priming step is needed. Builds
land in ``.pio/build/<env>/firmware.bin``; network uploads use
PlatformIO's own ``upload`` target with an IP as the upload port.
"""

from __future__ import annotations

import logging
from pathlib import Path

from firmware_codegen.errors import ArtifactNotFoundError, UploadError
from firmware_codegen.runner import BuildContext, run_command, tail_output
from firmware_codegen.toolchains.base import (
    BuildResult,
    BuildStrategy,
    stat_binary,
)

logger = logging.getLogger(__name__)

FIRMWARE_FILENAME = "firmware.bin"


class PlatformIOStrategy(BuildStrategy):
    """Build with the PlatformIO CLI (``pio``)."""

    key = "platformio"
    name = "PlatformIO"
    executables = ("pio", "platformio")

    @classmethod
    def output_dir(cls, project_dir: Path) -> Path:
        return project_dir / ".pio" / "build"

    def compose_build_command(self, project_dir: Path) -> list[str]:
        return [self.executable(), "run", "-d", str(project_dir)]

    def compose_upload_command(self, project_dir: Path, target_address: str) -> list[str]:
        return [
            self.executable(),
            "run",
            "-d",
            str(project_dir),
            "--target",
            "upload",
            "--upload-port",
            target_address,
        ]

    @classmethod
    def find_binary(cls, project_dir: Path) -> Path:
        """Return the first env's firmware.bin, envs in name order."""
        build_dir = cls.output_dir(project_dir)
        if build_dir.is_dir():
            for env_dir in sorted(p for p in build_dir.iterdir() if p.is_dir()):
                candidate = env_dir / FIRMWARE_FILENAME
                if candidate.is_file():
                    return candidate.resolve()
        raise ArtifactNotFoundError(build_dir, f"<env>/{FIRMWARE_FILENAME}")

    def build(self, project_dir: Path, ctx: BuildContext) -> BuildResult:
        logger.info("Building firmware with PlatformIO in %s", project_dir)
        self._run_compiler(self.compose_build_command(project_dir), ctx, cwd=project_dir)

        binary_path = self.find_binary(project_dir)
        return BuildResult(
            binary_path=binary_path,
            board=binary_path.parent.name,
            size_bytes=stat_binary(binary_path),
        )

    def upload(self, project_dir: Path, target_address: str, ctx: BuildContext) -> None:
        logger.info(
            "Uploading firmware via PlatformIO OTA from %s to %s", project_dir, target_address
        )
        result = run_command(
            self.compose_upload_command(project_dir, target_address), ctx, cwd=project_dir
        )
        if not result.ok:
            tail = tail_output(result.output)
            logger.error("PlatformIO upload failed (exit %d): %s", result.returncode, tail)
            raise UploadError(self.name, target_address, result.returncode, tail)
        logger.info("PlatformIO OTA upload to %s succeeded", target_address)


__all__ = ["FIRMWARE_FILENAME", "PlatformIOStrategy"]
