"""Shared types and small helpers for subdircache."""

from pathlib import Path
from typing import Union

from typing_extensions import TypedDict

# Keys embedded at the head of every repodata cache file, in file order.
URL_KEY = "_url"
ETAG_KEY = "_etag"
MOD_KEY = "_mod"
CACHE_CONTROL_KEY = "_cache_control"
HEADER_KEYS = (URL_KEY, ETAG_KEY, MOD_KEY, CACHE_CONTROL_KEY)

REPODATA_FN = "repodata.json"
NOARCH = "noarch"


class ModEtagHeaders(TypedDict, total=False):
    """Revalidation metadata stored as the first four keys of a cache file.

    An empty dict means no usable headers were found.
    """

    _url: str
    _etag: str
    _mod: str
    _cache_control: str


class RepoInfo(TypedDict):
    """Record handed to the solver layer once a subdirectory is loaded."""

    name: str
    url: str
    cache_path: str
    add_pip_as_python_dependency: bool
    etag: str
    mod: str


def is_file_url(url: Union[str, Path]) -> bool:
    """Check if a URL points at the local filesystem.

    Examples:
        >>> is_file_url('file:///srv/channel/linux-64/repodata.json')
        True
        >>> is_file_url('https://conda.anaconda.org/conda-forge')
        False
    """
    return str(url).startswith("file://")


def join_url(*parts: str) -> str:
    """Join URL fragments with single slashes.

    Examples:
        >>> join_url('https://repo.example.org/main/', 'linux-64', 'repodata.json')
        'https://repo.example.org/main/linux-64/repodata.json'
    """
    return "/".join(p.strip("/") if i else p.rstrip("/") for i, p in enumerate(parts))


def url_to_path(url: str) -> Path:
    """Convert a ``file://`` URL to a filesystem path."""
    if not is_file_url(url):
        raise ValueError(f"Not a file URL: {url}")
    return Path(url[len("file://") :])


def subdir_name(channel_url: str, platform: str) -> str:
    """Display name for a channel subdirectory, e.g. ``conda-forge/linux-64``."""
    channel = channel_url.rstrip("/").rsplit("/", 1)[-1]
    return f"{channel}/{platform}"
