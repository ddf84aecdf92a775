"""Configuration loader for the morphctl client."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

DEFAULT_BASE_URL = "https://cloud.morph.so/api"


@dataclass(frozen=True)
class SSHConfig:
    username: str = "root"
    # None uses the port of the selected endpoint
    port: Optional[int] = None
    connect_timeout: int = 30


@dataclass(frozen=True)
class PollingConfig:
    interval: float = 1.0
    backoff: float = 1.0
    max_interval: float = 10.0
    max_consecutive_errors: int = 3
    ready_timeout: float = 300.0
    rotation_timeout: float = 60.0


@dataclass(frozen=True)
class ClientConfig:
    api_key: Optional[str]
    base_url: str = DEFAULT_BASE_URL
    timeout: int = 30
    ssh: SSHConfig = field(default_factory=SSHConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        ssh_data = data.get("ssh", {}) or {}
        poll_data = data.get("polling", {}) or {}
        try:
            config = cls(
                api_key=data.get("api_key") or None,
                base_url=str(data.get("base_url") or DEFAULT_BASE_URL).rstrip("/"),
                timeout=int(data.get("timeout", 30)),
                ssh=SSHConfig(
                    username=str(ssh_data.get("username", "root")),
                    port=int(ssh_data["port"]) if ssh_data.get("port") is not None else None,
                    connect_timeout=int(ssh_data.get("connect_timeout", 30)),
                ),
                polling=PollingConfig(
                    interval=float(poll_data.get("interval", 1.0)),
                    backoff=float(poll_data.get("backoff", 1.0)),
                    max_interval=float(poll_data.get("max_interval", 10.0)),
                    max_consecutive_errors=int(poll_data.get("max_consecutive_errors", 3)),
                    ready_timeout=float(poll_data.get("ready_timeout", 300.0)),
                    rotation_timeout=float(poll_data.get("rotation_timeout", 60.0)),
                ),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration value: {exc}") from exc

        if config.polling.interval <= 0:
            raise ConfigError("polling.interval must be positive")
        if config.polling.backoff < 1.0:
            raise ConfigError("polling.backoff must be >= 1.0")
        return config

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigError("No API key configured. Set MORPH_API_KEY environment variable.")
        return self.api_key


ENV_MAP = {
    "api_key": "MORPH_API_KEY",
    "base_url": "MORPH_BASE_URL",
    "timeout": "MORPH_TIMEOUT",
    "ssh.username": "MORPH_SSH_USERNAME",
    "ssh.port": "MORPH_SSH_PORT",
    "polling.interval": "MORPH_POLL_INTERVAL",
    "polling.ready_timeout": "MORPH_READY_TIMEOUT",
    "polling.rotation_timeout": "MORPH_ROTATION_TIMEOUT",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for dotted_key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        target = merged
        parts = dotted_key.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value

    return merged


def load_config(config_path: str | Path | None = None) -> ClientConfig:
    """Build a ClientConfig from an optional YAML file plus MORPH_* env vars."""
    data: Dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        data = load_yaml(path)

    data = merge_env_overrides(data)
    return ClientConfig.from_dict(data)
