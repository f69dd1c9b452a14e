"""Arduino CLI build strategy.

Unlike PlatformIO, Arduino CLI needs the board core and libraries
installed up front, and it only builds sketch directories. The template
repository uses a PlatformIO layout (``src/main.cpp``), so a thin sketch
wrapper that includes the real source is synthesized when the project
is not already a sketch.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from firmware_codegen.errors import (
    BuildCancelledError,
    CodegenError,
    UploadError,
    WorkspaceError,
)
from firmware_codegen.runner import BuildContext, run_command, tail_output
from firmware_codegen.toolchains.base import (
    BuildResult,
    BuildStrategy,
    ensure_directory,
    stat_binary,
)
from firmware_codegen.toolchains.ota import find_espota, ota_port_for
from firmware_codegen.types import PrimingReport, StepOutcome

logger = logging.getLogger(__name__)

DEFAULT_ESP32_FQBN = "esp32:esp32:esp32"
DEFAULT_ESP8266_FQBN = "esp8266:esp8266:nodemcuv2"

# Board manager index per core vendor
BOARD_MANAGER_URLS = {
    "esp32": "https://raw.githubusercontent.com/espressif/arduino-esp32/gh-pages/package_esp32_index.json",
    "esp8266": "https://arduino.esp8266.com/stable/package_esp8266com_index.json",
}

DEFAULT_LIBRARIES = ("ArduinoJson",)
SKETCH_DIRNAME = "arduino_sketch"
OUTPUT_SUBDIR = Path("build") / "arduino-cli-output"


def split_fqbn(fqbn: str) -> tuple[str, str] | None:
    """Return (vendor, architecture) of an FQBN, or None if malformed."""
    parts = fqbn.split(":")
    if len(parts) < 3 or not all(parts[:3]):
        return None
    return parts[0], parts[1]


class ArduinoCLIStrategy(BuildStrategy):
    """Build with ``arduino-cli``, flash with ``espota.py``."""

    key = "arduino-cli"
    name = "Arduino CLI"
    executables = ("arduino-cli",)

    def __init__(
        self,
        board: str | None = None,
        libraries: Sequence[str] | None = None,
        main_source: Path = Path("src") / "main.cpp",
    ) -> None:
        super().__init__(board=board or DEFAULT_ESP32_FQBN)
        self.libraries = tuple(libraries) if libraries is not None else DEFAULT_LIBRARIES
        self.main_source = main_source

    @property
    def fqbn(self) -> str:
        return self.board or DEFAULT_ESP32_FQBN

    @classmethod
    def output_dir(cls, project_dir: Path) -> Path:
        return project_dir / OUTPUT_SUBDIR

    # -------------------------------------------------------------------------
    # Dependency priming
    # -------------------------------------------------------------------------

    def _prime_step(self, name: str, args: list[str], ctx: BuildContext) -> StepOutcome:
        """Run one priming command; failures become warnings."""
        try:
            result = run_command([self.executable(), *args], ctx)
        except BuildCancelledError:
            raise
        except CodegenError as e:
            logger.warning("Failed to %s: %s", name, e.message)
            return StepOutcome(name=name, ok=False, message=e.message)

        if not result.ok:
            message = f"exit code {result.returncode}: {tail_output(result.output, 200).strip()}"
            logger.warning("Failed to %s: %s", name, message)
            return StepOutcome(name=name, ok=False, message=message)
        return StepOutcome(name=name, ok=True)

    def prime_dependencies(self, ctx: BuildContext) -> PrimingReport:
        """Install the board core and libraries.

        Nothing here is fatal: a missing core shows up as a compile error
        later, with the compiler's own message.
        """
        report = PrimingReport(tool=self.key)
        parsed = split_fqbn(self.fqbn)
        if parsed is None:
            message = f"invalid FQBN {self.fqbn!r}, expected vendor:arch:board"
            logger.warning(message)
            report.steps.append(StepOutcome(name="parse board", ok=False, message=message))
        else:
            vendor, arch = parsed
            index_url = BOARD_MANAGER_URLS.get(vendor)
            if index_url:
                report.steps.append(
                    self._prime_step(
                        "add board manager URL",
                        ["config", "add", "board_manager.additional_urls", index_url],
                        ctx,
                    )
                )
            report.steps.append(self._prime_step("update core index", ["core", "update-index"], ctx))
            report.steps.append(
                self._prime_step(f"install core {vendor}:{arch}", ["core", "install", f"{vendor}:{arch}"], ctx)
            )

        for library in self.libraries:
            report.steps.append(
                self._prime_step(f"install library {library}", ["lib", "install", library], ctx)
            )

        if report.ok:
            logger.info("Arduino CLI dependencies ready for %s", self.fqbn)
        return report

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def prepare_sketch_dir(self, project_dir: Path) -> Path:
        """Return a directory arduino-cli can compile as a sketch.

        A project is a sketch when it holds ``<name>/<name>.ino``.
        Otherwise a wrapper sketch including the main source is written.
        """
        if (project_dir / f"{project_dir.name}.ino").is_file():
            return project_dir

        sketch_dir = ensure_directory(project_dir / SKETCH_DIRNAME)
        sketch_file = sketch_dir / f"{SKETCH_DIRNAME}.ino"
        main_cpp = (project_dir / self.main_source).resolve()
        try:
            sketch_file.write_text(f'#include "{main_cpp}"\n', encoding="utf-8")
        except OSError as e:
            raise WorkspaceError(f"failed to write sketch wrapper: {e}", path=sketch_file) from e

        logger.debug("Created sketch wrapper %s", sketch_file)
        return sketch_dir

    def compose_build_command(self, project_dir: Path, sketch_dir: Path) -> list[str]:
        return [
            self.executable(),
            "compile",
            "--fqbn",
            self.fqbn,
            "--output-dir",
            str(self.output_dir(project_dir)),
            "--libraries",
            str(project_dir / "lib"),
            str(sketch_dir),
        ]

    def build(self, project_dir: Path, ctx: BuildContext) -> BuildResult:
        logger.info("Building firmware with Arduino CLI for %s in %s", self.fqbn, project_dir)
        sketch_dir = self.prepare_sketch_dir(project_dir)
        ensure_directory(self.output_dir(project_dir))

        self._run_compiler(self.compose_build_command(project_dir, sketch_dir), ctx, cwd=project_dir)

        binary_path = self.find_binary(project_dir)
        return BuildResult(
            binary_path=binary_path,
            board=self.fqbn,
            size_bytes=stat_binary(binary_path),
        )

    # -------------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------------

    def upload(self, project_dir: Path, target_address: str, ctx: BuildContext) -> None:
        result = self.build(project_dir, ctx)
        espota = find_espota()

        logger.info("Uploading %s to %s via %s", result.binary_path, target_address, espota)
        command = [
            sys.executable,
            str(espota),
            "-i",
            target_address,
            "-p",
            str(ota_port_for(self.fqbn)),
            "-f",
            str(result.binary_path),
        ]
        flashed = run_command(command, ctx, cwd=project_dir)
        if not flashed.ok:
            tail = tail_output(flashed.output)
            logger.error("espota upload failed (exit %d): %s", flashed.returncode, tail)
            raise UploadError(self.name, target_address, flashed.returncode, tail)
        logger.info("Arduino CLI OTA upload to %s succeeded", target_address)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(board={self.board!r}, libraries={list(self.libraries)!r})"


__all__ = [
    "BOARD_MANAGER_URLS",
    "DEFAULT_ESP32_FQBN",
    "DEFAULT_ESP8266_FQBN",
    "ArduinoCLIStrategy",
    "split_fqbn",
]
