"""Settings loader and singleton manager.

This module handles:
- Environment variable loading from .env files
- Configuration file loading from TOML
- Thread-safe singleton pattern for the Settings instance
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from fetchvault.config.models.settings import Settings
from fetchvault.shared.errors import ApplicationError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "FETCHVAULT_CONFIG"
DEFAULT_CONFIG_PATH = Path("config/fetchvault.toml")
DEFAULT_ENV_FILE = Path(".env")


class SettingsLoader:
    """Thread-safe singleton manager for Settings.

    Uses double-checked locking to keep the common path lock-free.
    """

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.RLock()

    def get_config(self) -> Settings:
        """Get the global settings instance, loading it if necessary."""
        if self._instance is None:
            with self._lock:
                if self._instance is None:
                    self._instance = load_settings()

        return self._instance

    def reload_config(self) -> Settings:
        """Reload the global settings instance from configuration files."""
        with self._lock:
            self._instance = load_settings()

        return self._instance

    def set_config(self, settings: Settings | None) -> None:
        """Replace the global settings instance (None clears it)."""
        with self._lock:
            self._instance = settings


def load_settings(
    config_path: str | Path | None = None,
    env_file: str | Path | None = DEFAULT_ENV_FILE,
) -> Settings:
    """Load settings from an optional TOML file plus the environment.

    The TOML path is taken from the argument, then ``FETCHVAULT_CONFIG``,
    then ``config/fetchvault.toml``; a missing default file is not an error.

    Raises:
        ApplicationError: If an explicitly requested file is missing or
            the configuration does not validate
    """
    if env_file is not None and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    explicit = config_path or os.environ.get(CONFIG_PATH_ENV)
    path = Path(explicit) if explicit else DEFAULT_CONFIG_PATH
    context = ErrorContext(
        operation="load_settings",
        additional_data={"config_path": str(path)},
    )

    try:
        if path.exists():
            settings = Settings.from_toml_file(path)
            logger.debug("Loaded configuration from %s", path)
        elif explicit:
            raise ApplicationError(
                code=ErrorCode.CONFIG_MISSING,
                message=f"Configuration file not found: {path}",
                context=context,
            )
        else:
            settings = Settings()
    except ValidationError as e:
        raise ApplicationError(
            code=ErrorCode.CONFIG_ERROR,
            message=f"Invalid configuration: {e}",
            context=context,
            original_error=e,
        ) from e

    return settings


_loader = SettingsLoader()


def get_config() -> Settings:
    """Get the process-wide settings instance."""
    return _loader.get_config()


def reload_config() -> Settings:
    """Reload the process-wide settings instance."""
    return _loader.reload_config()


def set_config(settings: Settings | None) -> None:
    """Install a settings instance (tests and embedding applications)."""
    _loader.set_config(settings)
