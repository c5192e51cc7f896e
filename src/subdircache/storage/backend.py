"""Filesystem helpers for the repodata cache directory.

Handles cache directory creation, cache file naming and the timestamp and
removal operations the cache manager performs on cache artifacts.
"""

import hashlib
import logging
import os
import sys
from pathlib import Path
from typing import Union

from subdircache.utils import REPODATA_FN

logger = logging.getLogger(__name__)

# Group read/write plus setgid so users sharing a cache can all add files
CACHE_DIR_MODE = 0o2775


def create_cache_dir(cache_dir: Union[str, Path]) -> Path:
    """Create the shared repodata cache directory.

    Safe to call concurrently: an existing directory is not an error.

    Args:
        cache_dir: Directory to create

    Returns:
        Path to the cache directory
    """
    path = Path(cache_dir)
    path.mkdir(parents=True, exist_ok=True)
    if sys.platform != "win32":
        try:
            os.chmod(path, CACHE_DIR_MODE)
        except PermissionError as e:
            # Directory owned by another user of a shared cache
            logger.debug(f"Could not chmod {path}: {e}")
    return path


def _md5_not_for_security(data: bytes):
    return hashlib.md5(data, usedforsecurity=False)


def cache_fn_url(url: str, repodata_fn: str = REPODATA_FN) -> str:
    """Get the cache file name for a channel subdirectory URL.

    Args:
        url: Subdirectory URL (without the repodata file name)
        repodata_fn: Repodata file name, mixed into the key when non-default

    Returns:
        File name such as ``'09cdf8bf.json'``
    """
    # Trailing slash keeps keys stable between 'a/b' and 'a/b/'
    if not url.endswith("/"):
        url += "/"
    if repodata_fn != REPODATA_FN:
        url += repodata_fn

    md5 = _md5_not_for_security(url.encode("utf-8"))
    return f"{md5.hexdigest()[:8]}.json"


def solv_fn_for(json_fn: Union[str, Path]) -> Path:
    """Derived solv cache path: the json path with its extension replaced.

    Examples:
        >>> str(solv_fn_for('/cache/09cdf8bf.json'))
        '/cache/09cdf8bf.solv'
    """
    json_str = str(json_fn)
    if not json_str.endswith(".json"):
        raise ValueError(f"Cache file must end with .json: {json_fn}")
    return Path(json_str[:-4] + "solv")


def touch(path: Union[str, Path]) -> None:
    """Set a file's access and modification time to now without changing content."""
    os.utime(path, None)


def remove_if_exists(path: Union[str, Path]) -> bool:
    """Delete a file if present.

    Returns:
        True if a file was removed
    """
    path_obj = Path(path)
    if path_obj.exists():
        path_obj.unlink()
        return True
    return False
