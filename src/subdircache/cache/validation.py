"""Cache freshness checks for repodata cache files."""

import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

from subdircache.utils import is_file_url

# Sentinel age for files that are missing or whose timestamp cannot be read
INFINITE_AGE = timedelta.max

MAX_AGE_RE = re.compile(r"max-age=(\d+)")


def cache_age(
    cache_file: Union[str, Path], reference: Optional[datetime] = None
) -> timedelta:
    """Get how long ago a cache file was last written.

    Args:
        cache_file: Path to the cache file
        reference: Point in time to measure from (defaults to now, UTC)

    Returns:
        Age of the file, or INFINITE_AGE if it cannot be stat'ed
    """
    if reference is None:
        reference = datetime.now(timezone.utc)

    try:
        mtime = Path(cache_file).stat().st_mtime
        last_write = datetime.fromtimestamp(mtime, timezone.utc)
    except (OSError, ValueError, OverflowError):
        return INFINITE_AGE

    # Handle timezone-naive reference times
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    return reference - last_write


def is_infinite(age: timedelta) -> bool:
    """Check whether an age is the 'no usable file' sentinel."""
    return age == INFINITE_AGE


def age_seconds(age: timedelta) -> int:
    """Whole seconds of an age, truncated towards zero."""
    return int(age.total_seconds())


def forbid_cache(url: str) -> bool:
    """Check if TTL reasoning must be skipped for a URL.

    Local files are cheap to read, so they are always fetched again.

    Examples:
        >>> forbid_cache('file:///srv/channel/noarch/repodata.json')
        True
        >>> forbid_cache('https://conda.anaconda.org/conda-forge/noarch/repodata.json')
        False
    """
    return is_file_url(url)


def get_cache_control_max_age(cache_control: Optional[str]) -> int:
    """Extract the max-age directive from a Cache-Control header value.

    Examples:
        >>> get_cache_control_max_age('public, max-age=1200')
        1200
        >>> get_cache_control_max_age('no-cache')
        0
    """
    if not cache_control:
        return 0
    match = MAX_AGE_RE.search(cache_control)
    if match is None:
        return 0
    try:
        return int(match.group(1))
    except ValueError:
        return 0


def get_max_age(ttl: int, cache_control: Optional[str] = None) -> int:
    """Compute how many seconds a cache file stays fresh.

    Args:
        ttl: Configured TTL policy. Greater than 1 is used verbatim, exactly 1
            defers to the server's Cache-Control header, anything else means
            always revalidate.
        cache_control: Cache-Control value stored with the cache file

    Returns:
        Max age in seconds (0 means stale immediately)
    """
    if ttl > 1:
        return ttl
    if ttl == 1:
        return get_cache_control_max_age(cache_control)
    return 0


def is_solv_valid(solv_age: timedelta, json_age: timedelta) -> bool:
    """Check if the derived solv cache was built from the current json cache.

    The solv file is only trusted when it exists and is not older than the
    json file it was compiled from.
    """
    if is_infinite(solv_age):
        return False
    return solv_age <= json_age
