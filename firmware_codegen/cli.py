"""Thin CLI wrapper for firmware_codegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
import shutil
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from firmware_codegen import __version__
from firmware_codegen.config import get_settings, print_settings_json

app = typer.Typer(
    name="fwgen",
    help="Firmware codegen - build and OTA-flash per-device ESP firmware",
    no_args_is_help=True,
)
console = Console()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(level: str) -> None:
    """Send package logs to stderr through rich."""
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    pkg_logger = logging.getLogger("firmware_codegen")
    pkg_logger.handlers = [handler]
    pkg_logger.setLevel(level)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"firmware-codegen version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override log level (DEBUG, INFO, ...)"),
    ] = None,
) -> None:
    """Firmware codegen - build and OTA-flash per-device ESP firmware."""
    level = (log_level or get_settings().log_level).upper()
    if level not in LOG_LEVELS:
        console.print(f"[red]Invalid log level: {log_level}[/red]")
        raise typer.Exit(code=1)
    setup_logging(level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print_json(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Work directory:      {settings.work_dir}")
    console.print(f"  Source checkout:     {settings.source_dir}")
    console.print(f"  Builds directory:    {settings.builds_dir}")
    console.print()
    console.print("[bold]Firmware source:[/bold]")
    console.print(f"  Repository:          {settings.repo_url}")
    console.print(f"  Config header:       {settings.config_header}")
    console.print(f"  Main source:         {settings.main_source}")
    console.print()
    console.print("[bold]Toolchains:[/bold]")
    console.print(f"  Preferred tool:      {settings.preferred_tool or '(auto)'}")
    console.print(f"  Default board:       {settings.default_board}")
    console.print(f"  Arduino libraries:   {', '.join(settings.arduino_libraries)}")
    console.print(f"  Backend port:        {settings.default_backend_port}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Git timeout:         {settings.git_timeout}")
    console.print(f"  Build timeout:       {settings.build_timeout}")
    console.print(f"  Upload timeout:      {settings.upload_timeout}")


@app.command()
def tools(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show which build toolchains are installed."""
    from firmware_codegen.toolchains import describe_strategies

    rows = describe_strategies(get_settings())

    if json_output:
        console.print_json(data=rows)
        return

    console.print("[bold]Build tools (priority order):[/bold]")
    for row in rows:
        if row["available"]:
            console.print(f"  [green]✓ {row['name']}[/green] ({row['key']}): {row['path']}")
        else:
            console.print(f"  [dim]✗ {row['name']}[/dim] ({row['key']}): not installed")
    if not any(row["available"] for row in rows):
        console.print()
        console.print("[yellow]No build tool available: install PlatformIO CLI or Arduino CLI[/yellow]")


# =============================================================================
# Source subcommands
# =============================================================================

source_app = typer.Typer(help="Manage the shared firmware source checkout")
app.add_typer(source_app, name="source")


@source_app.command("sync")
def source_sync(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Clone or refresh the firmware source checkout."""
    from firmware_codegen.codegen.service import CodegenService
    from firmware_codegen.errors import CodegenError

    service = CodegenService(get_settings())
    try:
        result = service.sync_source()
    except CodegenError as e:
        console.print(f"[red]Source sync failed: {e.message}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print_json(
            data={
                "source_dir": str(result.source_dir),
                "cloned": result.cloned,
                "refreshed": result.refreshed,
                "warning": result.warning,
            }
        )
        return

    action = "Cloned" if result.cloned else "Updated" if result.refreshed else "Using existing"
    console.print(f"[green]✓ {action} source checkout[/green]")
    console.print(f"  Path: {result.source_dir}")
    if result.warning:
        console.print(f"  [yellow]Warning: {result.warning}[/yellow]")


# =============================================================================
# Build / upload
# =============================================================================


RequestFileOpt = Annotated[
    Path | None,
    typer.Option("--request", "-r", help="YAML/JSON request file"),
]
IpOpt = Annotated[str | None, typer.Option("--ip", help="Device static IP")]
HostOpt = Annotated[str | None, typer.Option("--host", help="Backend host")]
PortOpt = Annotated[int | None, typer.Option("--port", help="Backend port")]
ProtocolOpt = Annotated[str | None, typer.Option("--protocol", help="Backend protocol")]
SsidOpt = Annotated[str | None, typer.Option("--ssid", help="WiFi SSID")]
PasswordOpt = Annotated[str | None, typer.Option("--password", help="WiFi password")]
TokenOpt = Annotated[str | None, typer.Option("--token", help="Device auth token")]
DeviceNameOpt = Annotated[str | None, typer.Option("--device-name", help="Device name")]
ToolOpt = Annotated[
    str | None,
    typer.Option("--tool", help="Preferred build tool (platformio, arduino-cli)"),
]
BoardOpt = Annotated[str | None, typer.Option("--board", help="Board FQBN")]
JsonOpt = Annotated[bool, typer.Option("--json", help="Output as JSON")]


def _load_build_request(request_file: Path | None, overrides: dict[str, Any]) -> Any:
    """Build a request from a file and/or options, exiting on bad input."""
    import yaml
    from pydantic import ValidationError

    from firmware_codegen.codegen.io import load_request
    from firmware_codegen.codegen.schema import BuildRequest

    try:
        if request_file is not None:
            return load_request(request_file, overrides)
        return BuildRequest.model_validate({k: v for k, v in overrides.items() if v is not None})
    except FileNotFoundError:
        console.print(f"[red]Request file not found: {request_file}[/red]")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        console.print("[red]Invalid build request:[/red]")
        for error in e.errors():
            loc = ".".join(str(part) for part in error["loc"])
            console.print(f"  {loc}: {error['msg']}")
        raise typer.Exit(code=1) from None
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid request file: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None


def _print_pipeline_error(e: Any, json_output: bool) -> None:
    if json_output:
        console.print_json(
            data={
                "success": False,
                "error_code": e.code,
                "error_message": e.message,
                "build_id": getattr(e, "build_id", None),
            }
        )
    else:
        console.print(f"[red]✗ {e.message}[/red]")
        console.print(f"  Error code: {e.code}")


@app.command()
def build(
    request_file: RequestFileOpt = None,
    ip: IpOpt = None,
    host: HostOpt = None,
    port: PortOpt = None,
    protocol: ProtocolOpt = None,
    ssid: SsidOpt = None,
    password: PasswordOpt = None,
    token: TokenOpt = None,
    device_name: DeviceNameOpt = None,
    tool: ToolOpt = None,
    board: BoardOpt = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Copy the binary to this path"),
    ] = None,
    clean: Annotated[
        bool,
        typer.Option("--clean", help="Remove the build workspace when done"),
    ] = False,
    json_output: JsonOpt = False,
) -> None:
    """Build firmware for one device.

    Request values come from --request and/or individual options;
    options override file values.
    """
    from firmware_codegen.codegen.service import CodegenService
    from firmware_codegen.errors import CodegenError

    request = _load_build_request(
        request_file,
        {
            "ip": ip,
            "host_ip": host,
            "port": port,
            "protocol": protocol,
            "host_ssid": ssid,
            "host_pass": password,
            "token": token,
            "device_name": device_name,
            "build_tool": tool,
            "board_fqbn": board,
        },
    )

    service = CodegenService(get_settings())
    try:
        result = service.generate(request)
    except CodegenError as e:
        _print_pipeline_error(e, json_output)
        raise typer.Exit(code=1) from None

    binary_path = result.binary_path
    try:
        if output is not None:
            try:
                output.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(result.binary_path, output)
            except OSError as e:
                console.print(f"[red]Failed to copy binary to {output}: {e}[/red]")
                raise typer.Exit(code=1) from None
            binary_path = output
    finally:
        if clean:
            service.cleanup_build(result.build_id)

    if json_output:
        console.print_json(
            data={
                "success": True,
                "build_id": result.build_id,
                "binary_path": str(binary_path),
                "binary_size": result.binary_size,
                "tool": result.tool_name,
                "board": result.board,
                "workspace_removed": clean,
            }
        )
        return

    console.print("[green]✓ Build succeeded[/green]")
    console.print(f"  Build ID: {result.build_id}")
    console.print(f"  Binary:   {binary_path}")
    console.print(f"  Size:     {result.binary_size} bytes")
    console.print(f"  Tool:     {result.tool_name}")
    if result.board:
        console.print(f"  Board:    {result.board}")


@app.command()
def upload(
    target: Annotated[
        str | None,
        typer.Argument(help="Device address to flash (defaults to the request IP)"),
    ] = None,
    request_file: RequestFileOpt = None,
    ip: IpOpt = None,
    host: HostOpt = None,
    port: PortOpt = None,
    protocol: ProtocolOpt = None,
    ssid: SsidOpt = None,
    password: PasswordOpt = None,
    token: TokenOpt = None,
    device_name: DeviceNameOpt = None,
    tool: ToolOpt = None,
    board: BoardOpt = None,
    json_output: JsonOpt = False,
) -> None:
    """Build firmware and flash it to a device over the network."""
    from firmware_codegen.codegen.service import CodegenService
    from firmware_codegen.errors import CodegenError

    request = _load_build_request(
        request_file,
        {
            "ip": ip,
            "host_ip": host,
            "port": port,
            "protocol": protocol,
            "host_ssid": ssid,
            "host_pass": password,
            "token": token,
            "device_name": device_name,
            "build_tool": tool,
            "board_fqbn": board,
        },
    )

    service = CodegenService(get_settings())
    try:
        result = service.upload(request, target)
    except CodegenError as e:
        _print_pipeline_error(e, json_output)
        raise typer.Exit(code=1) from None

    if json_output:
        console.print_json(
            data={
                "success": True,
                "build_id": result.build_id,
                "target": result.target_address,
                "tool": result.tool_name,
                "binary_size": result.binary_size,
            }
        )
        return

    console.print(f"[green]✓ Firmware uploaded to {result.target_address}[/green]")
    console.print(f"  Build ID: {result.build_id}")
    console.print(f"  Tool:     {result.tool_name}")
    console.print(f"  Size:     {result.binary_size} bytes")


# =============================================================================
# Builds subcommands
# =============================================================================

builds_app = typer.Typer(help="Inspect and clean build workspaces")
app.add_typer(builds_app, name="builds")


@builds_app.command("path")
def builds_path(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
) -> None:
    """Print the binary path of a finished build."""
    from firmware_codegen.codegen.service import CodegenService
    from firmware_codegen.errors import CodegenError

    service = CodegenService(get_settings())
    try:
        path = service.get_binary_path(build_id)
    except CodegenError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None

    # Plain output so the path can be used in scripts
    typer.echo(str(path))


@builds_app.command("clean")
def builds_clean(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
) -> None:
    """Remove a build workspace."""
    from firmware_codegen.codegen.service import CodegenService
    from firmware_codegen.errors import CodegenError

    service = CodegenService(get_settings())
    try:
        result = service.cleanup_build(build_id)
    except CodegenError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None

    if result.error:
        console.print(f"[red]Failed to remove {result.path}: {result.error}[/red]")
        raise typer.Exit(code=1)
    if result.removed:
        console.print(f"[green]✓ Removed build {build_id}[/green]")
    else:
        console.print(f"[yellow]Build {build_id} not found, nothing to remove[/yellow]")


if __name__ == "__main__":
    app()
