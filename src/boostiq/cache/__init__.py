"""Response cache module."""

from .freshness import FreshnessCache, CacheEntry, CacheResult

__all__ = ["FreshnessCache", "CacheEntry", "CacheResult"]
