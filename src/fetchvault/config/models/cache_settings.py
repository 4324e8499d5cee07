"""Cache configuration model.

This module contains the configuration model for the memoization
cache: storage root, default container format and dependency policy.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from fetchvault.shared.constants import CacheConfig


class CacheSettings(BaseModel):
    """Memoization cache configuration."""

    root_dir: str = Field(
        default=CacheConfig.DEFAULT_DIR,
        description="Directory under which cache keys are stored",
    )
    default_format: str = Field(
        default="compact",
        pattern="^(compact|verbose)$",
        description="Container format used when a call does not choose one",
    )
    cascade_dependencies: bool = Field(
        default=True,
        description=(
            "Treat an entry as stale when one of its dependencies was "
            "regenerated earlier in the same run"
        ),
    )


__all__ = ["CacheSettings"]
