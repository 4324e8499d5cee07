"""FetchVault Settings Configuration Model.

Main Settings class that consolidates all configuration domains.
"""

from __future__ import annotations

from pathlib import Path

import toml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fetchvault.config.models.api_settings import APISettings
from fetchvault.config.models.cache_settings import CacheSettings
from fetchvault.config.models.logging_settings import LoggingSettings


class Settings(BaseSettings):
    """Unified configuration for the cache and fetch layers.

    Explicit keyword arguments (e.g. a parsed TOML file) take precedence
    over ``FETCHVAULT_*`` environment variables, which use ``__`` as the
    nesting delimiter (``FETCHVAULT_API__RETRY__MAX_TRANSIENT_RETRIES``).
    """

    model_config = SettingsConfigDict(
        env_prefix="FETCHVAULT_",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    cache: CacheSettings = Field(default_factory=CacheSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_toml_file(cls, file_path: str | Path) -> Settings:
        """Load settings from TOML file with environment variable overrides."""
        file_path = Path(file_path)
        if not file_path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise FileNotFoundError(msg)

        raw_config = toml.load(file_path)
        return cls(**raw_config)

    def to_toml_file(self, file_path: str | Path) -> None:
        """Save settings to TOML file.

        The access token is written too: config files are not logs.
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(exclude_none=True)

        with open(file_path, "w", encoding="utf-8") as f:
            toml.dump(config_dict, f)
