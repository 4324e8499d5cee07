"""Filesystem byte store.

This module provides the on-disk key-value store behind the memoization
cache. Keys are relative, path-shaped strings; each key is one file under
the store root. Writes go to a temporary file in the target directory and
are moved into place with ``os.replace`` so readers never see partial data.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from fetchvault.shared.constants import CacheConfig
from fetchvault.shared.errors import (
    ErrorCode,
    ErrorContext,
    StorageError,
    create_validation_error,
)
from fetchvault.shared.logging import log_operation_error, log_operation_success

logger = logging.getLogger(__name__)


class FileStore:
    """Byte store mapping path-shaped keys to files under a root directory.

    Args:
        root_dir: Directory that holds all keys. Created lazily on first write.
    """

    def __init__(self, root_dir: Path | str = CacheConfig.DEFAULT_DIR) -> None:
        self.root_dir = Path(root_dir)

    def __repr__(self) -> str:
        return f"FileStore(root_dir={str(self.root_dir)!r})"

    def path_for(self, key: str) -> Path:
        """Resolve a key to its file path.

        Raises:
            ApplicationError: If the key is empty, absolute or escapes the root.
        """
        normalized = key.replace("\\", "/")
        parts = PurePosixPath(normalized).parts
        if (
            not normalized.strip()
            or normalized.startswith("/")
            or ".." in parts
            or (parts and parts[0].endswith(":"))
        ):
            raise create_validation_error(
                f"Invalid cache key: {key!r}",
                field="key",
                operation="resolve_key",
            )
        return self.root_dir.joinpath(*parts)

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def read(self, key: str) -> bytes:
        """Read the bytes stored under key.

        Raises:
            StorageError: If the file cannot be read.
        """
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except OSError as e:
            error = StorageError(
                code=ErrorCode.FILE_READ_ERROR,
                message=f"Failed to read cache file for key '{key}': {e!s}",
                context=ErrorContext(
                    key=key,
                    operation="store_read",
                    additional_data={"file_path": path},
                ),
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, operation="store_read")
            raise error from e

    def write(self, key: str, data: bytes) -> None:
        """Atomically replace the bytes stored under key.

        Parent directories implied by the key are created on demand.

        Raises:
            StorageError: If the directory or file cannot be written.
        """
        path = self.path_for(key)
        context = ErrorContext(
            key=key,
            operation="store_write",
            additional_data={"file_path": path, "size": len(data)},
        )

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            error = StorageError(
                code=ErrorCode.DIRECTORY_CREATION_FAILED,
                message=f"Failed to create cache directory: {path.parent}",
                context=context,
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, operation="store_write")
            raise error from e

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=CacheConfig.TEMP_SUFFIX,
            dir=path.parent,
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_name, path)
        except OSError as e:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            error = StorageError(
                code=ErrorCode.FILE_WRITE_ERROR,
                message=f"Failed to write cache file for key '{key}': {e!s}",
                context=context,
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, operation="store_write")
            raise error from e

        log_operation_success(
            logger=logger,
            operation="store_write",
            duration_ms=0,
            context=context,
        )

    def mtime(self, key: str) -> datetime | None:
        """Return the modification time of key in UTC, or None if missing."""
        try:
            stat = self.path_for(key).stat()
        except FileNotFoundError:
            return None
        return datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
