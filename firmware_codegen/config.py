"""Configuration settings for firmware_codegen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REPO_URL = (
    "https://github.com/aruncs31s/"
    "Kannur-Solar-Battery-Monitoring-System-Microcontroller-Codes.git"
)


def _default_work_dir() -> Path:
    """Return the default working directory for checkouts and builds."""
    return Path(tempfile.gettempdir()) / "firmware-codegen"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the FWGEN_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="FWGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    work_dir: Path = Field(
        default_factory=_default_work_dir,
        description="Root directory for the shared checkout and build workspaces",
    )

    # Firmware source template
    repo_url: str = Field(
        default=DEFAULT_REPO_URL,
        description="Git URL of the firmware source template",
    )
    repo_name: str = Field(
        default="esp32-firmware-source",
        description="Directory name of the shared checkout under work_dir",
    )
    config_header: Path = Field(
        default=Path("include") / "config.h",
        description="Config header path, relative to the source root",
    )
    main_source: Path = Field(
        default=Path("src") / "main.cpp",
        description="Primary source file, relative to the source root",
    )

    # Toolchains
    preferred_tool: str | None = Field(
        default=None,
        description="Build tool used when a request does not name one",
    )
    default_board: str = Field(
        default="esp32:esp32:esp32",
        description="Board FQBN used by Arduino CLI when a request does not name one",
    )
    arduino_libraries: list[str] = Field(
        default_factory=lambda: ["ArduinoJson"],
        description="Libraries installed before an Arduino CLI build",
    )
    default_backend_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Backend port used when a request omits it",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    git_timeout: int = Field(
        default=300,
        ge=10,
        description="Timeout for git clone/pull",
    )
    build_timeout: int = Field(
        default=1800,
        ge=10,
        description="Timeout for a whole build, including dependency priming",
    )
    upload_timeout: int = Field(
        default=2400,
        ge=10,
        description="Timeout for build plus OTA upload",
    )

    @property
    def source_dir(self) -> Path:
        """Path of the shared source checkout."""
        return self.work_dir / self.repo_name

    @property
    def builds_dir(self) -> Path:
        """Directory holding per-build workspaces."""
        return self.work_dir / "builds"


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["DEFAULT_REPO_URL", "Settings", "get_settings", "print_settings_json"]
