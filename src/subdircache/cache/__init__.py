"""Repodata caching for channel subdirectories.

This module decides whether cached repodata is still fresh, arms conditional
refreshes, and commits finished transfers to the cache directory.

Key components:
- SubdirData: Per-subdirectory cache state machine
- CacheConfig: Configuration management
- metadata: Partial header reads and header splicing
- validation: Cache age and TTL checks
"""

from subdircache.cache.config import CacheConfig, get_global_config, set_global_config
from subdircache.cache.exceptions import (
    CacheError,
    CacheLockError,
    CacheMissingError,
    CacheNotLoadedError,
    CachePermissionError,
    CacheWriteError,
    UnhandledStatusError,
)
from subdircache.cache.manager import SubdirData

__all__ = [
    "SubdirData",
    "CacheConfig",
    "get_global_config",
    "set_global_config",
    "CacheError",
    "CacheLockError",
    "CacheMissingError",
    "CacheNotLoadedError",
    "CachePermissionError",
    "CacheWriteError",
    "UnhandledStatusError",
]
