"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.

Security Impact:
    - The remote auth token is loaded lazily and never logged
"""

import os
from pathlib import Path
from typing import Optional

from table_export.infrastructure.config_manager import ConfigManager, RemoteClientConfig

# Application metadata
APP_NAME = "Table-Export"
APP_VERSION = "1.0.0"

# Exports run concurrently on a bounded pool of this many workers.
DEFAULT_WORKER_POOL_SIZE = 4


class Settings:
    """Application settings loaded from configuration manager and environment."""

    def __init__(self):
        """Initialize settings from environment."""
        self._remote_config: Optional[RemoteClientConfig] = None
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("TE_APP_NAME", APP_NAME)
        self.worker_pool_size = int(os.getenv("TE_WORKER_POOL_SIZE", str(DEFAULT_WORKER_POOL_SIZE)))

        # Parent directory for per-export temp dirs; None means the system default.
        temp_dir = os.getenv("TE_TEMP_DIR")
        self.temp_dir: Optional[Path] = Path(temp_dir) if temp_dir else None

        # Logging
        self.log_level = os.getenv("TE_LOG_LEVEL", "INFO")
        self.log_json = os.getenv("TE_LOG_JSON", "false").lower() == "true"

    @property
    def remote_config(self) -> RemoteClientConfig:
        """Remote client configuration, loaded on first access."""
        if self._remote_config is None:
            self._remote_config = self.config_manager.get_remote_config()
        return self._remote_config

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager


# Global settings instance
settings = Settings()
