"""subdircache: On-disk cache of package channel repodata with conditional refresh."""

__version__ = "0.1.0"

from subdircache.cache import CacheConfig, SubdirData

__all__ = ["CacheConfig", "SubdirData", "__version__"]
