"""Protocol definitions for dependency inversion."""

from __future__ import annotations

from .services import ByteStoreProtocol, GeneratorProtocol

__all__ = ["ByteStoreProtocol", "GeneratorProtocol"]
