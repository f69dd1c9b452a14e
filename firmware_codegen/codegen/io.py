"""Build request loading from YAML/JSON files.

Request files use the same field names as the backend API, e.g.::

    ip: 192.168.1.50
    host_ip: 192.168.1.10
    port: 8080
    host_ssid: lab-net
    host_pass: secret
    token: abc123
"""

import json
from pathlib import Path
from typing import Any

import yaml

from firmware_codegen.codegen.schema import BuildRequest


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_request_data(path: Path) -> dict[str, Any]:
    """Load raw request data, choosing the parser by file extension."""
    if path.suffix.lower() == ".json":
        return load_json(path)
    return load_yaml(path)


def load_request(
    path: Path,
    overrides: dict[str, Any] | None = None,
) -> BuildRequest:
    """Load and validate a build request file.

    Args:
        path: Path to a YAML or JSON request file.
        overrides: Values that replace those from the file (None values
            are ignored).

    Returns:
        Validated BuildRequest.

    Raises:
        pydantic.ValidationError: If the data does not match the schema.
    """
    data = load_request_data(path)
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return BuildRequest.model_validate(data)


__all__ = ["load_json", "load_request", "load_request_data", "load_yaml"]
