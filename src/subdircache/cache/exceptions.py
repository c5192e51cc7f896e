"""Exceptions raised by the repodata cache."""


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CacheNotLoadedError(CacheError):
    """Raised when a cache path is requested before any cache was validated."""

    pass


class CacheWriteError(CacheError):
    """Raised when the final cache file cannot be created or written."""

    pass


class CachePermissionError(CacheError):
    """Raised when cache directory permissions are insufficient."""

    pass


class CacheLockError(CacheError):
    """Raised when unable to acquire cache lock."""

    pass


class UnhandledStatusError(CacheError):
    """Raised when a finished transfer reports an HTTP status we cannot use."""

    def __init__(self, status: int, url: str):
        super().__init__(f"Unhandled HTTP code: {status} for {url}")
        self.status = status
        self.url = url


class CacheMissingError(CacheError):
    """Raised when a cache file disappears before it can be revalidated."""

    pass
