"""Cache data models.

This module defines the persisted container of a cached value, the
container formats and the freshness policy used to judge stored entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CacheFormat(str, Enum):
    """On-disk container formats.

    VERBOSE is pretty-printed JSON meant to be read and hand-edited.
    COMPACT is zlib-compressed JSON for large datasets.
    """

    VERBOSE = "verbose"
    COMPACT = "compact"


class CacheEntry(BaseModel):
    """Persisted unit of the memoization cache.

    Attributes:
        data: The cached value in its JSON form.
        generated_at: UTC timestamp of the generation that produced data.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "data": [{"type_id": 34, "volume": 1200}],
                "generated_at": "2024-01-01T00:00:00+00:00",
            },
        },
    )

    data: Any = Field(..., description="The cached value")
    generated_at: datetime = Field(..., description="When data was generated (UTC)")

    @field_validator("generated_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class FreshnessPolicy:
    """Decides whether a stored entry may be returned without regenerating.

    Attributes:
        max_age: Maximum entry age; None means entries never expire.
        force_refresh: Always regenerate, ignoring any stored entry.
    """

    max_age: timedelta | None = None
    force_refresh: bool = False

    @classmethod
    def max_age_of(cls, **kwargs: float) -> FreshnessPolicy:
        """Build a policy from timedelta keyword arguments, e.g. ``hours=24``."""
        return cls(max_age=timedelta(**kwargs))

    @classmethod
    def forced(cls) -> FreshnessPolicy:
        return cls(force_refresh=True)

    def is_fresh(self, generated_at: datetime, now: datetime) -> bool:
        """Return True if an entry generated at generated_at is still valid."""
        if self.force_refresh:
            return False
        if self.max_age is None:
            return True
        return now - generated_at < self.max_age
