"""Smoke tests for the CLI.

These tests verify CLI behavior without requiring network access or
external toolchains; the pipeline service is mocked.
"""

import json
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from firmware_codegen import __version__
from firmware_codegen.cli import app
from firmware_codegen.codegen.service import GenerateResult, UploadResult
from firmware_codegen.errors import (
    BuildNotFoundError,
    CompileError,
    PipelineError,
)
from firmware_codegen.types import BuildStage, CleanupResult, SourceSyncResult

runner = CliRunner()

REQUEST_ARGS = [
    "--ip",
    "10.0.0.5",
    "--host",
    "10.0.0.1",
    "--ssid",
    "lab",
    "--password",
    "pw",
    "--token",
    "abc",
]


def generate_result(tmp_path: Path) -> GenerateResult:
    binary = tmp_path / "fw.bin"
    binary.write_bytes(b"\x00" * 128)
    return GenerateResult(
        build_id="1700000000-1-deadbeef",
        binary_path=binary,
        binary_size=128,
        tool_name="PlatformIO",
        tool_key="platformio",
        board="esp32dev",
        workspace=tmp_path,
    )


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Firmware codegen" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        """CLI with no args should show help."""
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout

    def test_invalid_log_level(self) -> None:
        result = runner.invoke(app, ["--log-level", "LOUD", "config"])
        assert result.exit_code == 1
        assert "Invalid log level" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self) -> None:
        """CLI config should show configuration."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Work directory" in result.stdout
        assert "Build timeout" in result.stdout

    def test_config_json(self) -> None:
        """CLI config --json should print parseable settings."""
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        parsed = json.loads(result.stdout)
        assert parsed["repo_name"] == "esp32-firmware-source"


class TestCLITools:
    """Test CLI tools command."""

    ROWS = [
        {"key": "platformio", "name": "PlatformIO", "available": True, "path": "/usr/bin/pio"},
        {"key": "arduino-cli", "name": "Arduino CLI", "available": False, "path": None},
    ]

    def test_tools(self) -> None:
        with patch("firmware_codegen.toolchains.describe_strategies", return_value=self.ROWS):
            result = runner.invoke(app, ["tools"])
        assert result.exit_code == 0
        assert "PlatformIO" in result.stdout
        assert "not installed" in result.stdout

    def test_tools_json(self) -> None:
        with patch("firmware_codegen.toolchains.describe_strategies", return_value=self.ROWS):
            result = runner.invoke(app, ["tools", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == self.ROWS


class TestCLISource:
    """Test CLI source sync command."""

    def test_sync(self, tmp_path) -> None:
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.sync_source.return_value = SourceSyncResult(
                source_dir=tmp_path, cloned=True, refreshed=True
            )
            result = runner.invoke(app, ["source", "sync", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["cloned"] is True


class TestCLIBuild:
    """Test CLI build command."""

    def test_build_json(self, tmp_path) -> None:
        """build --json should report the build result."""
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.generate.return_value = generate_result(tmp_path)
            result = runner.invoke(app, ["build", *REQUEST_ARGS, "--json"])

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert output["success"] is True
        assert output["build_id"] == "1700000000-1-deadbeef"
        assert output["binary_size"] == 128
        assert output["tool"] == "PlatformIO"

        request = mock_service.return_value.generate.call_args[0][0]
        assert request.device_ip == "10.0.0.5"
        assert request.wifi_password == "pw"

    def test_build_from_request_file(self, tmp_path) -> None:
        """build --request should load the file and apply option overrides."""
        request_file = tmp_path / "device.yaml"
        request_file.write_text(
            "ip: 10.0.0.5\nhost_ip: 10.0.0.1\nhost_ssid: lab\nhost_pass: pw\ntoken: abc\n"
        )
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.generate.return_value = generate_result(tmp_path)
            result = runner.invoke(
                app, ["build", "--request", str(request_file), "--token", "override"]
            )

        assert result.exit_code == 0
        assert "Build succeeded" in result.stdout
        request = mock_service.return_value.generate.call_args[0][0]
        assert request.token == "override"

    def test_build_output_and_clean(self, tmp_path) -> None:
        """build --output --clean should copy the binary and drop the workspace."""
        out = tmp_path / "dist" / "device.bin"
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.generate.return_value = generate_result(tmp_path)
            result = runner.invoke(
                app, ["build", *REQUEST_ARGS, "--output", str(out), "--clean", "--json"]
            )

        assert result.exit_code == 0
        assert out.read_bytes() == b"\x00" * 128
        mock_service.return_value.cleanup_build.assert_called_once_with("1700000000-1-deadbeef")
        assert json.loads(result.stdout)["workspace_removed"] is True

    def test_build_invalid_request(self) -> None:
        """build with missing fields should fail validation."""
        result = runner.invoke(app, ["build", "--ip", "10.0.0.5"])
        assert result.exit_code == 1
        assert "Invalid build request" in result.stdout

    def test_build_missing_request_file(self, tmp_path) -> None:
        result = runner.invoke(app, ["build", "--request", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "Request file not found" in result.stdout

    def test_build_malformed_request_file(self, tmp_path) -> None:
        """build should report unparseable YAML instead of a traceback."""
        request_file = tmp_path / "device.yaml"
        request_file.write_text("ip: [10.0.0.5\nhost_ip: 10.0.0.1\n")
        result = runner.invoke(app, ["build", "--request", str(request_file)])
        assert result.exit_code == 1
        assert "Invalid request file" in result.stdout

    def test_build_pipeline_error(self) -> None:
        """build should print the error code and exit 1."""
        error = PipelineError(
            "firmware build failed",
            BuildStage.TOOL_RESOLVED,
            CompileError("PlatformIO", 1, "error: boom"),
            build_id="b1",
        )
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.generate.side_effect = error
            result = runner.invoke(app, ["build", *REQUEST_ARGS, "--json"])

        assert result.exit_code == 1
        output = json.loads(result.stdout)
        assert output["success"] is False
        assert output["error_code"] == "compile_failed"
        assert output["build_id"] == "b1"


class TestCLIUpload:
    """Test CLI upload command."""

    def test_upload(self) -> None:
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.upload.return_value = UploadResult(
                build_id="b1", target_address="10.0.0.9", tool_name="PlatformIO", binary_size=10
            )
            result = runner.invoke(app, ["upload", "10.0.0.9", *REQUEST_ARGS])

        assert result.exit_code == 0
        assert "uploaded to 10.0.0.9" in result.stdout
        args = mock_service.return_value.upload.call_args[0]
        assert args[1] == "10.0.0.9"


class TestCLIBuilds:
    """Test CLI builds subcommands."""

    def test_path(self, tmp_path) -> None:
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.get_binary_path.return_value = tmp_path / "fw.bin"
            result = runner.invoke(app, ["builds", "path", "b1"])
        assert result.exit_code == 0
        assert result.stdout.strip() == str(tmp_path / "fw.bin")

    def test_path_not_found(self) -> None:
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.get_binary_path.side_effect = BuildNotFoundError("b1")
            result = runner.invoke(app, ["builds", "path", "b1"])
        assert result.exit_code == 1
        assert "build b1 not found" in result.stdout

    def test_clean(self, tmp_path) -> None:
        with patch("firmware_codegen.codegen.service.CodegenService") as mock_service:
            mock_service.return_value.cleanup_build.return_value = CleanupResult(
                path=tmp_path, removed=True
            )
            result = runner.invoke(app, ["builds", "clean", "b1"])
        assert result.exit_code == 0
        assert "Removed build b1" in result.stdout
