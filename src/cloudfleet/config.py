"""Config file loading and auto-discovery for cloudfleet.

Searches for ``cloudfleet.yaml`` in the current directory and parent
directories, parses it, and resolves relative file paths against the
config file's location.

Example::

    credentials:
      path: ./credentials.yaml
    decryptor:
      key_env: CLOUDFLEET_ENCRYPTION_KEY
    events:
      log: true
      webhook_url: https://hooks.example.com/cloudfleet
    bulk:
      max_workers: 5
      retention_seconds: 5
    log_level: INFO
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "cloudfleet.yaml"


@dataclass(frozen=True)
class CloudFleetConfig:
    """Parsed cloudfleet configuration."""

    config_path: Path | None = None
    credentials: dict[str, Any] = field(default_factory=dict)
    decryptor: dict[str, Any] = field(default_factory=dict)
    events: dict[str, Any] = field(default_factory=dict)
    bulk: dict[str, Any] = field(default_factory=dict)
    log_level: str = "WARNING"
    aws_endpoint_url: str | None = None


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``cloudfleet.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> CloudFleetConfig:
    """Load a cloudfleet config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``CloudFleetConfig`` (all defaults).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return CloudFleetConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> CloudFleetConfig:
    """Read and parse a YAML config file, resolving relative paths."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    base = config_path.parent

    def _section(key: str) -> dict[str, Any]:
        val = data.get(key) or {}
        if not isinstance(val, dict):
            msg = f"'{key}' must be a mapping in {config_path}"
            raise ValueError(msg)
        return dict(val)

    credentials = _section("credentials")
    if credentials.get("path"):
        credentials["path"] = str((base / credentials["path"]).resolve())

    return CloudFleetConfig(
        config_path=config_path,
        credentials=credentials,
        decryptor=_section("decryptor"),
        events=_section("events"),
        bulk=_section("bulk"),
        log_level=str(data.get("log_level", "WARNING")).upper(),
        aws_endpoint_url=data.get("aws_endpoint_url"),
    )
