"""Filesystem layer for the repodata cache."""

from subdircache.storage.backend import (
    CACHE_DIR_MODE,
    cache_fn_url,
    create_cache_dir,
    remove_if_exists,
    solv_fn_for,
    touch,
)
from subdircache.storage.decompress import (
    DecompressionError,
    StagingFile,
    decompress,
    decompress_raw,
)

__all__ = [
    "CACHE_DIR_MODE",
    "DecompressionError",
    "StagingFile",
    "cache_fn_url",
    "create_cache_dir",
    "decompress",
    "decompress_raw",
    "remove_if_exists",
    "solv_fn_for",
    "touch",
]
