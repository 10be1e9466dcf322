"""Configuration Manager for Secure Credential Handling.

This module provides a configuration manager for the remote table store
connection: endpoint, auth token and async job polling limits.

Security Impact:
    - The auth token is stored as SecretStr and never logged
    - Configuration is validated before use
    - Configuration files with permissive permissions trigger a warning

Architecture:
    - Infrastructure layer, isolated from the domain
    - Supports environment variables (with optional .env file) and JSON files
    - Type-safe configuration using Pydantic models
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator

logger = logging.getLogger(__name__)

DEFAULT_SYNAPSE_ENDPOINT = "https://repo-prod.prod.sagebase.org"


class RemoteClientConfig(BaseModel):
    """Remote table store configuration.

    Parameters:
        endpoint: Base URL of the remote REST API
        auth_token: Bearer token (SecretStr - never logged)
        poll_interval_seconds: Delay between async job status checks
        max_polls: Status checks before an async job is considered timed out
        request_timeout_seconds: Timeout for a single HTTP request
        max_retries: Retries for transient HTTP failures (429, 5xx)
    """

    endpoint: str = Field(default=DEFAULT_SYNAPSE_ENDPOINT, description="Remote REST API base URL")
    auth_token: Optional[SecretStr] = Field(None, description="Bearer auth token (secret)")
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    max_polls: int = Field(default=120, ge=1)
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=3, ge=0)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Require an http(s) URL and strip the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Endpoint must be an http(s) URL: {v}")
        return v.rstrip("/")

    @property
    def max_wait_seconds(self) -> float:
        """Longest time an async job is waited on."""
        return self.poll_interval_seconds * self.max_polls


class ConfigManager:
    """Configuration manager for the remote client and other settings.

    Example Usage:
        ```python
        # Load from environment variables
        config = ConfigManager.from_environment()
        remote_config = config.get_remote_config()

        # Load from file
        config = ConfigManager.from_file("config.json")
        remote_config = config.get_remote_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary
        """
        self._config_data = config_data
        self._remote_config: Optional[RemoteClientConfig] = None

    @classmethod
    def from_environment(cls) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - TE_SYNAPSE_ENDPOINT: Remote REST API base URL
            - TE_SYNAPSE_AUTH_TOKEN: Bearer auth token (secret)
            - TE_POLL_INTERVAL_SECONDS: Delay between async job status checks
            - TE_MAX_POLLS: Status checks before an async job times out
            - TE_REQUEST_TIMEOUT_SECONDS: Timeout for a single HTTP request
            - TE_MAX_RETRIES: Retries for transient HTTP failures

        A .env file in the current working directory is loaded first, without
        overriding variables that are already set.
        """
        env_path = Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        remote = {
            "endpoint": os.getenv("TE_SYNAPSE_ENDPOINT"),
            "auth_token": os.getenv("TE_SYNAPSE_AUTH_TOKEN"),
            "poll_interval_seconds": os.getenv("TE_POLL_INTERVAL_SECONDS"),
            "max_polls": os.getenv("TE_MAX_POLLS"),
            "request_timeout_seconds": os.getenv("TE_REQUEST_TIMEOUT_SECONDS"),
            "max_retries": os.getenv("TE_MAX_RETRIES"),
        }
        # Unset variables fall back to model defaults.
        config_data = {"remote": {k: v for k, v in remote.items() if v is not None}}

        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Parameters:
            config_path: Path to configuration file

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        # Credential files should be readable by the owner only.
        stat_info = config_file.stat()
        if stat_info.st_mode & 0o077 != 0:
            logger.warning(
                f"Configuration file has overly permissive permissions: {config_path}. "
                "Consider setting to 600 for credential files."
            )

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}") from e

        return cls(config_data)

    def get_remote_config(self) -> RemoteClientConfig:
        """Get the validated remote client configuration."""
        if self._remote_config is None:
            self._remote_config = RemoteClientConfig(**self._config_data.get("remote", {}))
        return self._remote_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Parameters:
            key: Configuration key (supports dot notation, e.g., "remote.endpoint")
            default: Default value if key not found
        """
        keys = key.split(".")
        value = self._config_data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


def get_remote_config() -> RemoteClientConfig:
    """Convenience function to get the remote client configuration from environment."""
    return ConfigManager.from_environment().get_remote_config()
