"""Pydantic models for firmware build requests.

A BuildRequest carries the per-device values that are injected into
the firmware config header. Network-identity fields are opaque strings:
they are never checked for format or reachability here, since that is
a runtime concern of the device, not a build-time one.

Field aliases match the wire names used by the device backend API
(``ip``, ``host_ip``, ``host_ssid``, ...).
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BuildRequest(BaseModel):
    """Per-device firmware build request.

    Attributes:
        device_ip: Static IP address assigned to the device.
        backend_host: Backend server host the device reports to.
        backend_port: Backend server port (0 leaves the template value).
        backend_protocol: Backend protocol (http/https).
        wifi_ssid: WiFi network name.
        wifi_password: WiFi password.
        token: Device authentication token.
        device_name: Optional device identifier.
        build_tool: Optional preferred build tool key.
        board: Optional board identifier (FQBN for Arduino CLI).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    device_ip: str = Field(alias="ip", min_length=1, description="Device static IP")
    backend_host: str = Field(alias="host_ip", min_length=1, description="Backend host")
    backend_port: int = Field(
        default=8080, alias="port", ge=0, le=65535, description="Backend port"
    )
    backend_protocol: str | None = Field(
        default=None, alias="protocol", description="Backend protocol"
    )
    wifi_ssid: str = Field(alias="host_ssid", min_length=1, description="WiFi SSID")
    wifi_password: str = Field(
        alias="host_pass", min_length=1, description="WiFi password"
    )
    token: str = Field(min_length=1, description="Device auth token")
    device_name: str | None = Field(default=None, description="Device name")
    build_tool: str | None = Field(default=None, description="Preferred build tool")
    board: str | None = Field(default=None, alias="board_fqbn", description="Board ID")

    @field_validator("device_ip", "backend_host", "wifi_ssid", "token")
    @classmethod
    def strip_identity(cls, v: str) -> str:
        """Strip surrounding whitespace; the value must stay non-empty."""
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("build_tool", "board", "device_name", "backend_protocol")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat blank optional strings as absent."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("build_tool")
    @classmethod
    def normalize_tool(cls, v: str | None) -> str | None:
        """Build tool keys are case-insensitive."""
        return v.lower() if v else v

    def to_wire(self) -> dict[str, object]:
        """Dump using the wire field names, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = ["BuildRequest"]
