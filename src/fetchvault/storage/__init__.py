"""Byte stores backing the memoization cache."""

from __future__ import annotations

from .file_store import FileStore

__all__ = ["FileStore"]
