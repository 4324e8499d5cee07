"""FetchVault Error Handling Module

This module defines the error handling system for FetchVault, providing
structured error classes with context information.

The error hierarchy follows these principles:
- One Source of Truth: All error codes are defined in ErrorCode enum
- Structured Context: ErrorContext provides additional information
- Proper Exception Chaining: Original exceptions are preserved
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Union

# Type alias for primitive context values (str, int, float, bool only)
PrimitiveContextValue = Union[str, int, float, bool]

# Default keys to mask in safe_dict
SAFE_DICT_MASK_KEYS: tuple[str, ...] = ("token",)


class ErrorCode(str, Enum):
    """Error codes for FetchVault.

    This enum serves as the single source of truth for all error codes
    used throughout the library.
    """

    # Storage Errors
    FILE_READ_ERROR = "FILE_READ_ERROR"
    FILE_WRITE_ERROR = "FILE_WRITE_ERROR"
    DIRECTORY_CREATION_FAILED = "DIRECTORY_CREATION_FAILED"

    # Cache Errors
    CACHE_CORRUPTED = "CACHE_CORRUPTED"
    CACHE_SERIALIZATION_ERROR = "CACHE_SERIALIZATION_ERROR"
    CACHE_FORMAT_MISMATCH = "CACHE_FORMAT_MISMATCH"
    CACHE_GENERATION_FAILED = "CACHE_GENERATION_FAILED"

    # Network and API Errors
    NETWORK_ERROR = "NETWORK_ERROR"
    API_RATE_LIMIT = "API_RATE_LIMIT"
    API_REQUEST_FAILED = "API_REQUEST_FAILED"
    API_SERVER_ERROR = "API_SERVER_ERROR"
    API_NOT_FOUND = "API_NOT_FOUND"
    API_INVALID_RESPONSE = "API_INVALID_RESPONSE"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Configuration Errors
    CONFIG_ERROR = "CONFIG_ERROR"
    CONFIG_MISSING = "CONFIG_MISSING"

    # Concurrency Errors
    CONCURRENCY_ERROR = "CONCURRENCY_ERROR"

    # Application Errors
    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"


def _coerce_primitives(value: Any | None) -> dict[str, PrimitiveContextValue] | None:
    """Coerce additional_data values to primitives.

    Converts Path, Enum, Decimal to primitive types and drops None values.

    Args:
        value: Input dictionary or None

    Returns:
        Dictionary with primitive values only, or None

    Raises:
        TypeError: If value is not a dict or contains unconvertible types
    """
    if value is None:
        return None

    if not isinstance(value, dict):
        error_msg = f"additional_data must be dict, got {type(value).__name__}"
        raise TypeError(error_msg)

    coerced: dict[str, PrimitiveContextValue] = {}
    for key, val in value.items():
        if val is None:
            continue
        if isinstance(val, (str, int, float, bool)):
            coerced[key] = val
        elif isinstance(val, Path):
            coerced[key] = str(val)
        elif isinstance(val, Enum):
            coerced[key] = val.value
        elif isinstance(val, Decimal):
            coerced[key] = float(val)
        else:
            error_msg = (
                f"Cannot coerce {type(val).__name__} to primitive type. "
                f"Only str, int, float, bool, Path, Enum, Decimal are allowed."
            )
            raise TypeError(error_msg)

    return coerced


@dataclass(frozen=True)
class ErrorContext:
    """Context information for errors.

    Only primitive types (str, int, float, bool) are allowed in
    additional_data so the context can always be logged as JSON.

    Attributes:
        key: Optional cache key associated with the error
        operation: Optional operation name that caused the error
        additional_data: Optional dict with primitive values only
    """

    key: str | None = None
    operation: str | None = None
    additional_data: dict[str, PrimitiveContextValue] | None = None

    def __post_init__(self) -> None:
        if self.additional_data is not None:
            coerced = _coerce_primitives(self.additional_data)
            object.__setattr__(self, "additional_data", coerced)

    def safe_dict(self, *, mask_keys: tuple[str, ...] | None = None) -> dict[str, Any]:
        """Export context as dict with sensitive keys masked.

        Args:
            mask_keys: additional_data keys to exclude. Defaults to SAFE_DICT_MASK_KEYS.

        Returns:
            Dictionary with a guaranteed additional_data key.

        Example:
            >>> context = ErrorContext(key="auth", additional_data={"token": "x"})
            >>> context.safe_dict()
            {'key': 'auth', 'additional_data': {}}
        """
        if mask_keys is None:
            mask_keys = SAFE_DICT_MASK_KEYS

        data: dict[str, Any] = {}
        if self.key is not None:
            data["key"] = self.key
        if self.operation is not None:
            data["operation"] = self.operation

        data["additional_data"] = {
            k: v for k, v in (self.additional_data or {}).items() if k not in mask_keys
        }
        return data


class FetchVaultError(Exception):
    """Base exception class for all FetchVault errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        """Initialize FetchVaultError.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            context: Additional context information
            original_error: Original exception that caused this error
        """
        self.code = code
        self.message = message
        self.context = context or ErrorContext()
        self.original_error = original_error
        super().__init__(f"{code.value}: {message}")

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging.

        Returns:
            Dictionary representation of the error with code, message,
            masked context, and original_error (if present)
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "context": self.context.safe_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DomainError(FetchVaultError):
    """Domain-specific errors.

    These errors occur when cache rules are violated: corrupt entries,
    mixed formats for one key, failed generators.
    """


class InfrastructureError(FetchVaultError):
    """Infrastructure-related errors.

    These errors occur when interacting with external systems
    like the file system or the remote API.
    """


class ApplicationError(FetchVaultError):
    """Application-level errors (configuration, invalid arguments)."""


class StorageError(InfrastructureError):
    """Storage I/O failure. Always fatal for the calling operation."""


class CacheDecodeError(DomainError):
    """A stored entry could not be decoded. Treated as a cache miss."""


class CacheFormatMismatchError(DomainError):
    """A key was read or written with a format other than its own."""


class GeneratorError(DomainError):
    """A generator failed; the stored entry for the key is left untouched."""

    def __init__(
        self,
        key: str,
        original_error: BaseException,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.CACHE_GENERATION_FAILED,
            f"generation failed for key {key}: {original_error}",
            context or ErrorContext(key=key, operation="generate"),
            original_error,
        )
        self.key = key


class RemoteError(InfrastructureError):
    """Remote API call failed.

    Attributes:
        status: HTTP status code, or None for network-level failures
        retry_after: Retry-After hint in seconds, when the server sent one
        url: Requested URL, when known
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        *,
        retry_after: float | None = None,
        url: str | None = None,
        code: ErrorCode = ErrorCode.API_REQUEST_FAILED,
        context: ErrorContext | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        self.status = status
        self.retry_after = retry_after
        self.url = url
        super().__init__(
            code,
            message,
            context
            or ErrorContext(
                operation="remote_call",
                additional_data={"status": status, "url": url},
            ),
            original_error,
        )


class RemoteThrottledError(RemoteError):
    """Throttling persisted past the configured retry bound."""


class OperationTimeoutError(InfrastructureError):
    """A run-wide deadline expired at a suspension point."""


def create_remote_error(
    status: int | None,
    url: str | None = None,
    *,
    body: str | None = None,
    retry_after: float | None = None,
    original_error: BaseException | None = None,
) -> RemoteError:
    """Create a RemoteError with an error code matching the status."""
    if status is None:
        code = ErrorCode.NETWORK_ERROR
        message = f"Network error calling {url}"
    elif status in (420, 429):
        code = ErrorCode.API_RATE_LIMIT
        message = f"Throttled by remote API (status {status})"
    elif status == 404:
        code = ErrorCode.API_NOT_FOUND
        message = f"Not found: {url}"
    elif 500 <= status < 600:
        code = ErrorCode.API_SERVER_ERROR
        message = f"Remote server error (status {status})"
    else:
        code = ErrorCode.API_REQUEST_FAILED
        message = f"Remote request failed (status {status})"

    if body:
        message = f"{message}: {body[:200]}"

    return RemoteError(
        message,
        status,
        retry_after=retry_after,
        url=url,
        code=code,
        original_error=original_error,
    )


def create_validation_error(
    message: str,
    field: str | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> ApplicationError:
    """Create a validation error with context."""
    context = ErrorContext(
        operation=operation,
        additional_data={"field": field} if field else None,
    )
    return ApplicationError(
        ErrorCode.VALIDATION_ERROR,
        message,
        context,
        original_error,
    )
