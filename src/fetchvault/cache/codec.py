"""Container codec for cache entries.

This module wraps a value with its generation timestamp and serializes it
in one of two formats. It uses orjson for serialization, zlib for the
compact format and pydantic for validating decoded containers.

Both formats share the envelope ``{"data": ..., "generated_at": ...}``:

* VERBOSE: indented JSON, insertion order kept, trailing newline.
* COMPACT: ``b"FVC1"`` magic followed by zlib-compressed compact JSON.
"""

from __future__ import annotations

import zlib
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import orjson
from pydantic import TypeAdapter, ValidationError

from fetchvault.cache.models import CacheEntry, CacheFormat
from fetchvault.shared.constants import CodecConfig
from fetchvault.shared.errors import (
    CacheDecodeError,
    CacheFormatMismatchError,
    DomainError,
    ErrorCode,
    ErrorContext,
)


_DUMP_OPTIONS = orjson.OPT_PASSTHROUGH_DATETIME | orjson.OPT_PASSTHROUGH_DATACLASS
_VERBOSE_OPTIONS = _DUMP_OPTIONS | orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE


def _default(obj: Any) -> Any:
    raise TypeError(
        f"Type is not JSON serializable without a value_type: {type(obj).__name__}"
    )


@lru_cache(maxsize=128)
def _adapter_for(value_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(value_type)


class ContainerCodec:
    """Stateless encoder/decoder for cache containers.

    Values without a ``value_type`` must be plain JSON (dicts with string
    keys, lists, strings, numbers, booleans, None) and are rejected
    otherwise, since tuples, sets, datetimes or models would come back as
    something else. With a ``value_type`` the value is serialized through
    its pydantic adapter and restored by the same adapter on decode.

    Example:
        >>> codec = ContainerCodec()
        >>> raw = codec.encode({"a": 1}, now, CacheFormat.VERBOSE)
        >>> codec.decode(raw, CacheFormat.VERBOSE)
        ({'a': 1}, now)
    """

    def __init__(self, compression_level: int = CodecConfig.COMPRESSION_LEVEL) -> None:
        self.compression_level = compression_level

    def _serialization_error(
        self,
        key: str | None,
        fmt: CacheFormat,
        reason: str,
        original_error: Exception | None = None,
    ) -> DomainError:
        return DomainError(
            code=ErrorCode.CACHE_SERIALIZATION_ERROR,
            message=f"Failed to serialize cache data for key '{key}': {reason}",
            context=ErrorContext(key=key, operation="encode", additional_data={"format": fmt}),
            original_error=original_error,
        )

    def encode(
        self,
        value: Any,
        generated_at: datetime,
        fmt: CacheFormat,
        value_type: Any | None = None,
        *,
        key: str | None = None,
    ) -> bytes:
        """Serialize value and its timestamp into container bytes.

        Raises:
            DomainError: If the value cannot be serialized, or would not
                decode back to an equal value without a value_type.
        """
        if generated_at.tzinfo is None:
            generated_at = generated_at.replace(tzinfo=timezone.utc)

        try:
            data = value
            if value_type is not None:
                data = _adapter_for(value_type).dump_python(value, mode="json")
            envelope = {
                CodecConfig.FIELD_DATA: data,
                CodecConfig.FIELD_GENERATED_AT: generated_at.astimezone(timezone.utc).isoformat(),
            }
            options = _VERBOSE_OPTIONS if fmt is CacheFormat.VERBOSE else _DUMP_OPTIONS
            payload = orjson.dumps(envelope, default=_default, option=options)
        except (TypeError, ValueError) as e:
            # orjson.JSONEncodeError is a TypeError, pydantic serialization
            # errors are ValueErrors
            raise self._serialization_error(key, fmt, str(e), e) from e

        # Tuples, enums, UUIDs and NaN serialize natively but decode as
        # something else
        if value_type is None and orjson.loads(payload)[CodecConfig.FIELD_DATA] != value:
            raise self._serialization_error(
                key,
                fmt,
                f"{type(value).__name__} value does not survive a JSON round trip; "
                "pass a value_type to store it",
            )

        if fmt is CacheFormat.VERBOSE:
            return payload
        return CodecConfig.COMPACT_MAGIC + zlib.compress(payload, self.compression_level)

    def decode(
        self,
        raw: bytes,
        fmt: CacheFormat,
        value_type: Any | None = None,
        *,
        key: str | None = None,
    ) -> tuple[Any, datetime]:
        """Deserialize container bytes into (value, generated_at).

        Args:
            raw: Container bytes
            fmt: Format the bytes are expected to be in
            value_type: Optional type to validate the value into (pydantic)
            key: Cache key, for error context only

        Raises:
            CacheFormatMismatchError: If raw was written in the other format.
            CacheDecodeError: If raw is corrupt or does not validate.
        """
        context = ErrorContext(key=key, operation="decode", additional_data={"format": fmt})
        is_compact = raw.startswith(CodecConfig.COMPACT_MAGIC)

        if fmt is CacheFormat.VERBOSE:
            if is_compact:
                raise CacheFormatMismatchError(
                    code=ErrorCode.CACHE_FORMAT_MISMATCH,
                    message=f"Key '{key}' holds a compact entry but was read as verbose",
                    context=context,
                )
            payload = raw
        else:
            if not is_compact:
                if raw.lstrip()[:1] == b"{":
                    raise CacheFormatMismatchError(
                        code=ErrorCode.CACHE_FORMAT_MISMATCH,
                        message=f"Key '{key}' holds a verbose entry but was read as compact",
                        context=context,
                    )
                raise CacheDecodeError(
                    code=ErrorCode.CACHE_CORRUPTED,
                    message=f"Cache entry for key '{key}' has no compact header",
                    context=context,
                )
            try:
                payload = zlib.decompress(raw[len(CodecConfig.COMPACT_MAGIC) :])
            except zlib.error as e:
                raise CacheDecodeError(
                    code=ErrorCode.CACHE_CORRUPTED,
                    message=f"Cache entry for key '{key}' failed to decompress: {e!s}",
                    context=context,
                    original_error=e,
                ) from e

        try:
            entry = CacheEntry.model_validate(orjson.loads(payload))
            value = entry.data
            if value_type is not None:
                value = _adapter_for(value_type).validate_python(value)
        except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
            raise CacheDecodeError(
                code=ErrorCode.CACHE_CORRUPTED,
                message=f"Cache entry for key '{key}' could not be decoded: {e!s}",
                context=context,
                original_error=e,
            ) from e

        return value, entry.generated_at
