"""Cache configuration management."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

DEFAULT_ROOT = Path.home() / ".subdircache"


def _default_pkgs_dirs() -> List[Path]:
    return [DEFAULT_ROOT / "pkgs"]


@dataclass
class CacheConfig:
    """Configuration for the repodata cache.

    Attributes:
        local_repodata_ttl: TTL policy. Values greater than 1 are a max age in
            seconds; 1 means honour the server's Cache-Control max-age; 0 or
            less means always revalidate.
        offline: Never hit the network; any existing cache is accepted
        pkgs_dirs: Package cache roots, the first writable one hosts the
            repodata cache directory
        add_pip_as_python_dependency: Passed through to the solver repository
        lock_timeout: Seconds to wait for the per-file cache lock
        connect_timeout: HTTP connect timeout in seconds
        read_timeout: HTTP read timeout in seconds
    """

    local_repodata_ttl: int = 1
    offline: bool = False
    pkgs_dirs: List[Path] = field(default_factory=_default_pkgs_dirs)
    add_pip_as_python_dependency: bool = True
    lock_timeout: float = 30.0
    connect_timeout: float = 9.15
    read_timeout: float = 60.0

    def __post_init__(self):
        """Ensure pkgs_dirs holds expanded Path objects."""
        if not self.pkgs_dirs:
            self.pkgs_dirs = _default_pkgs_dirs()
        self.pkgs_dirs = [Path(p).expanduser() for p in self.pkgs_dirs]

    def first_writable_pkgs_dir(self) -> Path:
        """Return the first package cache root that is (or can be made) writable.

        Falls back to the first configured root so callers get a clear
        permission error when creating files there.
        """
        for pkgs_dir in self.pkgs_dirs:
            if pkgs_dir.exists():
                if os.access(pkgs_dir, os.W_OK):
                    return pkgs_dir
                continue
            parent = pkgs_dir.parent
            while not parent.exists() and parent != parent.parent:
                parent = parent.parent
            if os.access(parent, os.W_OK):
                return pkgs_dir
        return self.pkgs_dirs[0]

    @property
    def cache_dir(self) -> Path:
        """Directory holding repodata json and solv caches."""
        return self.first_writable_pkgs_dir() / "cache"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            CacheConfig instance
        """
        if config_path is None:
            config_path = DEFAULT_ROOT / "config.json"

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if "pkgs_dirs" in data:
            data["pkgs_dirs"] = [Path(p) for p in data["pkgs_dirs"]]

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path is None:
            config_path = DEFAULT_ROOT / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "local_repodata_ttl": self.local_repodata_ttl,
            "offline": self.offline,
            "pkgs_dirs": [str(p) for p in self.pkgs_dirs],
            "add_pip_as_python_dependency": self.add_pip_as_python_dependency,
            "lock_timeout": self.lock_timeout,
            "connect_timeout": self.connect_timeout,
            "read_timeout": self.read_timeout,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            SUBDIRCACHE_TTL: TTL policy (see local_repodata_ttl)
            SUBDIRCACHE_OFFLINE: Offline mode (true/false)
            SUBDIRCACHE_PKGS_DIRS: Package cache roots, os.pathsep separated

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("SUBDIRCACHE_TTL"):
            config.local_repodata_ttl = int(os.getenv("SUBDIRCACHE_TTL"))

        if os.getenv("SUBDIRCACHE_OFFLINE"):
            config.offline = os.getenv("SUBDIRCACHE_OFFLINE", "").lower() == "true"

        if os.getenv("SUBDIRCACHE_PKGS_DIRS"):
            config.pkgs_dirs = [
                Path(p).expanduser()
                for p in os.getenv("SUBDIRCACHE_PKGS_DIRS").split(os.pathsep)
                if p
            ]

        return config


# Global cache configuration instance
_global_config: Optional[CacheConfig] = None


def get_global_config() -> CacheConfig:
    """Get global cache configuration.

    Returns:
        Global CacheConfig instance
    """
    global _global_config
    if _global_config is None:
        # Try loading from file, then env, then defaults
        try:
            _global_config = CacheConfig.load()
        except (OSError, ValueError, TypeError):
            _global_config = CacheConfig.from_env()
    return _global_config


def set_global_config(config: Optional[CacheConfig]) -> None:
    """Set global cache configuration.

    Args:
        config: CacheConfig instance to use globally, or None to reset
    """
    global _global_config
    _global_config = config
