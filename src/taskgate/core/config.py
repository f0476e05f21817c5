"""Application configuration loaded from environment and config files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings


class RTMConfig(BaseSettings):
    """Remember The Milk API configuration."""

    model_config = {"env_prefix": "TASKGATE_RTM_"}

    api_key: str = ""
    shared_secret: str = ""
    api_endpoint: str = "https://api.rememberthemilk.com/services/rest/"
    auth_endpoint: str = "https://www.rememberthemilk.com/services/auth/"
    permissions: str = "delete"
    timeout_seconds: float = 15.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.shared_secret)


class AuthConfig(BaseSettings):
    """Token persistence configuration."""

    model_config = {"env_prefix": "TASKGATE_AUTH_"}

    token_path: str = "~/.config/taskgate/rtm_token.json"

    @property
    def resolved_token_path(self) -> Path:
        return Path(self.token_path).expanduser()


class ServerConfig(BaseSettings):
    """HTTP server configuration."""

    model_config = {"env_prefix": "TASKGATE_SERVER_"}

    name: str = "taskgate"
    version: str = "0.1.0"
    host: str = "127.0.0.1"
    port: int = 8080
    status_secret: str | None = None


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "TASKGATE_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    server: ServerConfig = Field(default_factory=ServerConfig)
    rtm: RTMConfig = Field(default_factory=RTMConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)


_SECTIONS = {"server": ServerConfig, "rtm": RTMConfig, "auth": AuthConfig}


def load_settings(path: str | Path | None = None) -> Settings:
    """Build Settings from the environment, overlaid with an optional YAML file.

    The file may contain ``server``, ``rtm`` and ``auth`` mappings plus the
    scalar root keys of :class:`Settings`. Keys present in the file win over
    environment values and defaults.

    Raises:
        FileNotFoundError: If ``path`` is given but does not exist.
        ValueError: If the file is not a YAML mapping.
    """
    if path is None:
        return Settings()

    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    root: dict[str, Any] = {}
    for key, value in data.items():
        section = _SECTIONS.get(key)
        if section is not None:
            root[key] = section(**(value or {}))
        else:
            root[key] = value
    return Settings(**root)
