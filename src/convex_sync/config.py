"""
Convex Sync Configuration System.

This module provides a type-safe configuration system using Pydantic.
Settings can be loaded from:
1. Environment variables (prefixed with CONVEX_SYNC_)
2. Config file (TOML or JSON)
3. CLI arguments (highest priority)

Example usage:
    from convex_sync.config import Settings

    # Load from environment
    settings = Settings()

    # Or with explicit values
    settings = Settings(
        deploy_url="https://aware-llama-900.convex.cloud",
        deploy_key="prod:aware-llama-900|...",
    )
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


CONVEX_CLOUD_SUFFIX = ".convex.cloud"


class HttpOptions(BaseModel):
    """HTTP client options for talking to the deployment."""

    connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Connection timeout",
    )
    read_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Read timeout for a single page",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per request on rate limiting or transport errors",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base delay between attempts (multiplied by attempt number)",
    )


class SyncOptions(BaseModel):
    """Options controlling sync invocations."""

    state_file: Path = Field(
        default=Path(".convex-sync-state.json"),
        description="Path to the file holding the latest checkpoint",
    )
    output: Path | None = Field(
        default=None,
        description="File receiving the JSON-lines update stream (None = stdout)",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path (None = console only)",
    )
    format: str = Field(
        default="rich",
        pattern="^(rich|json|simple)$",
        description="Log format: rich (colored), json, or simple",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Max log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Number of rotated log files to keep",
    )


class Settings(BaseSettings):
    """
    Main settings class for Convex Sync.

    Settings are loaded in this priority (highest first):
    1. Explicit constructor arguments
    2. Environment variables (CONVEX_SYNC_* prefix)
    3. Config file (if specified)
    4. Defaults

    Example:
        # From environment
        export CONVEX_SYNC_DEPLOY_URL="https://aware-llama-900.convex.cloud"
        export CONVEX_SYNC_DEPLOY_KEY="prod:aware-llama-900|..."
        settings = Settings()

        # From config file
        settings = Settings.from_file("config.toml")
    """

    model_config = SettingsConfigDict(
        env_prefix="CONVEX_SYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Deployment credentials
    deploy_url: str = Field(
        default="",
        description="Root URL of the deployment (e.g. https://aware-llama-900.convex.cloud)",
    )
    deploy_key: SecretStr = Field(
        default=SecretStr(""),
        description="Deploy key granting admin access to the deployment",
    )
    allow_all_hosts: bool = Field(
        default=False,
        description="Accept any http(s) host, not only Convex cloud deployments",
    )

    # Nested configs
    http: HttpOptions = Field(default_factory=HttpOptions)
    sync: SyncOptions = Field(default_factory=SyncOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("deploy_key", mode="before")
    @classmethod
    def validate_key(cls, v: Any) -> SecretStr:
        """Handle key from various sources."""
        if isinstance(v, SecretStr):
            return v
        if isinstance(v, str):
            return SecretStr(v)
        return SecretStr("")

    @classmethod
    def from_file(cls, path: Path | str) -> "Settings":
        """Load settings from a TOML or JSON config file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        if path.suffix in (".toml", ".tml"):
            data = tomllib.loads(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        return cls.model_validate(data)

    def to_file(self, path: Path | str) -> None:
        """Save current settings to a config file."""
        path = Path(path)
        data = self.model_dump(mode="json", exclude_none=True)

        # Mask sensitive data
        if "deploy_key" in data:
            data["deploy_key"] = "***REDACTED***"

        if path.suffix in (".toml", ".tml"):
            # Basic TOML serialization
            lines = []
            for key, value in data.items():
                if isinstance(value, dict):
                    lines.append(f"\n[{key}]")
                    for k, v in value.items():
                        lines.append(f"{k} = {json.dumps(v)}")
                else:
                    lines.append(f"{key} = {json.dumps(value)}")
            path.write_text("\n".join(lines))
        else:
            path.write_text(json.dumps(data, indent=2))

    def validate_credentials(self) -> list[str]:
        """Validate the deployment URL and key. Returns list of errors."""
        errors = validate_deploy_url(self.deploy_url, self.allow_all_hosts)
        if not self.deploy_key.get_secret_value():
            errors.append("deploy_key is required")
        return errors


def validate_deploy_url(url: str, allow_all_hosts: bool = False) -> list[str]:
    """
    Check that a deployment URL is a bare root URL.

    Unless `allow_all_hosts` is set, it must also be an https URL of a
    Convex cloud deployment on the default port.
    """
    if not url:
        return ["deploy_url is required"]

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return ["Invalid deploy_url (must be an URL)"]

    if not parts.scheme or not parts.netloc:
        return ["Invalid deploy_url (must be an URL)"]

    host = parts.hostname
    if not host:
        return ["Invalid deploy_url: must contain a host."]

    if (
        parts.path not in ("", "/")
        or parts.query
        or "?" in url
        or parts.fragment
        or "#" in url
        or parts.username is not None
        or parts.password is not None
        or parts.scheme not in ("http", "https")
    ):
        return ["Invalid deploy_url: must be a root URL."]

    if not allow_all_hosts and (
        port is not None
        or parts.scheme != "https"
        or not host.endswith(CONVEX_CLOUD_SUFFIX)
    ):
        return ["Invalid deploy_url: must be a Convex deployment URL."]

    return []


# Convenience function for loading settings
def load_settings(
    config_file: Path | str | None = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings with optional config file and overrides.

    Args:
        config_file: Optional path to config file
        **overrides: Settings to override (highest priority)

    Returns:
        Configured Settings instance
    """
    if config_file:
        settings = Settings.from_file(config_file)
        if overrides:
            data = settings.model_dump()
            data.update(overrides)
            return Settings.model_validate(data)
        return settings
    return Settings(**overrides)
