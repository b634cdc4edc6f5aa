"""Persistent storage helpers."""

from .unit_cache import CacheKey, UnitCache

__all__ = ["CacheKey", "UnitCache"]
