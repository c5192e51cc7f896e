"""Cache manager for the repodata of one channel subdirectory."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from filelock import FileLock, Timeout

from subdircache.base.target import TransferTarget
from subdircache.cache.config import CacheConfig, get_global_config
from subdircache.cache.exceptions import (
    CacheLockError,
    CacheMissingError,
    CacheNotLoadedError,
    CachePermissionError,
)
from subdircache.cache.finalize import (
    CacheState,
    Decompress,
    EnsureCacheDir,
    ReleaseStaging,
    ReportStatus,
    Splice,
    TouchJson,
    TouchSolv,
    plan_finalize,
)
from subdircache.cache.metadata import read_mod_and_etag, splice_cache_file
from subdircache.cache.validation import (
    age_seconds,
    cache_age,
    forbid_cache,
    get_max_age,
    is_infinite,
    is_solv_valid,
)
from subdircache.display import StatusDisplay, SubdirTask
from subdircache.storage.backend import (
    cache_fn_url,
    create_cache_dir,
    remove_if_exists,
    solv_fn_for,
    touch,
)
from subdircache.storage.decompress import StagingFile, decompress
from subdircache.utils import (
    CACHE_CONTROL_KEY,
    ETAG_KEY,
    MOD_KEY,
    NOARCH,
    REPODATA_FN,
    ModEtagHeaders,
    RepoInfo,
    join_url,
    subdir_name,
)

logger = logging.getLogger(__name__)

TargetFactory = Callable[[str, str, Path], TransferTarget]


def _default_target_factory(config: CacheConfig) -> TargetFactory:
    from subdircache.transfer import make_target

    timeout = (config.connect_timeout, config.read_timeout)

    def factory(name: str, url: str, destination: Path) -> TransferTarget:
        return make_target(name, url, destination, timeout=timeout)

    return factory


class SubdirData:
    """Repodata cache for a single channel subdirectory.

    :meth:`load` either accepts the cached files as they are or arms a
    transfer target. The caller's transfer layer runs that target, which
    calls :meth:`finalize_transfer` exactly once when it is done.

    Examples:
        >>> sd = SubdirData('conda-forge/linux-64',
        ...                 'https://conda.anaconda.org/conda-forge/linux-64/repodata.json',
        ...                 cache_dir / '09cdf8bf.json')
        >>> sd.load()
        True
        >>> if sd.target is not None:
        ...     sd.target.run()
        >>> sd.cache_path()
    """

    def __init__(
        self,
        name: str,
        repodata_url: str,
        json_fn: Path,
        is_noarch: bool = False,
        config: Optional[CacheConfig] = None,
        target_factory: Optional[TargetFactory] = None,
        display: Optional[StatusDisplay] = None,
    ):
        """Initialize the subdirectory cache.

        Args:
            name: Display name, e.g. 'conda-forge/linux-64'
            repodata_url: URL of the repodata file
            json_fn: Path of the json cache file (must end with .json)
            is_noarch: Whether this is the noarch subdirectory, whose
                download failures are fatal
            config: Cache configuration (uses global if None)
            target_factory: Builds transfer targets, defaults to
                :func:`subdircache.transfer.make_target`
            display: Status display (quiet if None)
        """
        self._name = name
        self.repodata_url = repodata_url
        self.json_fn = Path(json_fn)
        self.solv_fn = solv_fn_for(self.json_fn)
        self.is_noarch = is_noarch
        self.config = config or get_global_config()
        self._target_factory = target_factory or _default_target_factory(self.config)
        self._display = display or StatusDisplay.quiet()

        self._state = CacheState()
        self._staging: Optional[StagingFile] = None
        self._target: Optional[TransferTarget] = None
        self._task: Optional[SubdirTask] = None

    @classmethod
    def from_channel(
        cls,
        channel_url: str,
        platform: str,
        repodata_fn: str = REPODATA_FN,
        config: Optional[CacheConfig] = None,
        **kwargs,
    ) -> "SubdirData":
        """Build the cache for ``<channel_url>/<platform>/<repodata_fn>``.

        The json cache lives in the config's cache directory under a name
        derived from the subdirectory URL.
        """
        config = config or get_global_config()
        subdir_url = join_url(channel_url, platform)
        json_fn = config.cache_dir / cache_fn_url(subdir_url, repodata_fn)
        return cls(
            subdir_name(channel_url, platform),
            join_url(subdir_url, repodata_fn),
            json_fn,
            is_noarch=platform == NOARCH,
            config=config,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def loaded(self) -> bool:
        return self._state.loaded

    @property
    def download_complete(self) -> bool:
        return self._state.download_complete

    @property
    def json_cache_valid(self) -> bool:
        return self._state.json_cache_valid

    @property
    def solv_cache_valid(self) -> bool:
        return self._state.solv_cache_valid

    @property
    def mod_etag(self) -> ModEtagHeaders:
        return self._state.mod_etag

    @property
    def target(self) -> Optional[TransferTarget]:
        """Transfer target armed by the last :meth:`load`, if any."""
        return self._target

    @property
    def staging(self) -> Optional[StagingFile]:
        return self._staging

    def forbid_cache(self) -> bool:
        return forbid_cache(self.repodata_url)

    def load(self, config: Optional[CacheConfig] = None) -> bool:
        """Accept the cached repodata or arm a refresh.

        Args:
            config: Configuration for this call (instance config if None)

        Returns:
            True. Check :attr:`loaded` and :attr:`target` for the outcome: a
            loaded cache needs no transfer; otherwise a target is armed unless
            the cache is missing while offline, in which case nothing is loaded.
        """
        config = config or self.config
        now = datetime.now(timezone.utc)
        json_age = cache_age(self.json_fn, now)

        if not is_infinite(json_age) and not self.forbid_cache():
            logger.info(f"Found cache file {self.json_fn}")
            mod_etag = read_mod_and_etag(self.json_fn)
            self._state = CacheState(mod_etag=mod_etag)
            if mod_etag:
                max_age = get_max_age(
                    config.local_repodata_ttl, mod_etag.get(CACHE_CONTROL_KEY)
                )
                json_age_seconds = age_seconds(json_age)
                if max_age > json_age_seconds or config.offline:
                    logger.info(
                        f"Using cache {self.repodata_url} age in seconds: "
                        f"{json_age_seconds} / {max_age}"
                    )
                    self._display.using_cache(self._name)

                    solv_age = cache_age(self.solv_fn, now)
                    solv_valid = is_solv_valid(solv_age, json_age)
                    if is_infinite(solv_age):
                        logger.info("No solv cache file")
                    else:
                        logger.info(f"Solv cache age in seconds: {age_seconds(solv_age)}")
                    if solv_valid:
                        logger.info("Also using .solv cache file")

                    self._state = CacheState(
                        loaded=True,
                        json_cache_valid=True,
                        solv_cache_valid=solv_valid,
                        mod_etag=mod_etag,
                    )
                    return True
                logger.info(
                    f"Cache for {self.repodata_url} is stale, age in seconds: "
                    f"{json_age_seconds} / {max_age}"
                )
            else:
                logger.info("Could not determine cache file mod / etag headers")
            self._create_target(mod_etag)
        else:
            logger.info(f"No cache found {self.repodata_url}")
            self._state = CacheState()
            if not config.offline or self.forbid_cache():
                self._create_target(ModEtagHeaders())
        return True

    def _create_target(self, mod_etag: ModEtagHeaders) -> None:
        """Arm a transfer of the repodata into a fresh staging file."""
        self._release_staging()
        self._staging = StagingFile()
        self._task = self._display.add_task(self._name)
        target = self._target_factory(self._name, self.repodata_url, self._staging.path)
        target.set_progress(self._task)
        # Only the noarch subdirectory is required
        target.set_ignore_failure(not self.is_noarch)
        target.set_finalize_callback(self.finalize_transfer)
        target.set_mod_etag_headers(mod_etag)
        self._target = target

    def finalize_transfer(
        self, target: TransferTarget, config: Optional[CacheConfig] = None
    ) -> bool:
        """Commit the result of a finished transfer to the cache.

        Args:
            target: The transfer target that finished
            config: Configuration for this call (instance config if None)

        Returns:
            True if the cache is usable afterwards, False if the transfer failed

        Raises:
            UnhandledStatusError: If the HTTP status is not 0, 200 or 304
            CacheWriteError: If the final cache file cannot be written
            CacheLockError: If the cache file lock cannot be acquired
            CachePermissionError: If the cache directory or files cannot be written
            CacheMissingError: If a 304 arrives after the cache file was removed
        """
        config = config or self.config
        outcome = target.outcome()
        now = datetime.now(timezone.utc)

        try:
            new_state, effects = plan_finalize(
                outcome,
                self._state,
                json_age=cache_age(self.json_fn, now),
                solv_age=cache_age(self.solv_fn, now),
                compressed=self.repodata_url.endswith(".bz2"),
            )
        except Exception:
            self._release_staging()
            raise

        if outcome.failed:
            self._apply(effects)
            self._release_staging()
            self._state = new_state
            return False

        lock_path = self.json_fn.with_name(self.json_fn.name + ".lock")
        try:
            try:
                self.json_fn.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError as e:
                raise CachePermissionError(
                    f"Cannot create cache directory {self.json_fn.parent}: {e}"
                ) from e
            try:
                with FileLock(lock_path, timeout=config.lock_timeout):
                    self._apply(effects)
            except Timeout as e:
                raise CacheLockError(
                    f"Timeout acquiring lock for {self.json_fn} after "
                    f"{config.lock_timeout} seconds"
                ) from e
            except PermissionError as e:
                raise CachePermissionError(
                    f"Cannot update cache files in {self.json_fn.parent}: {e}"
                ) from e
        finally:
            self._release_staging()

        self._state = new_state
        return True

    def _apply(self, effects) -> None:
        for effect in effects:
            if isinstance(effect, ReportStatus):
                self._report(effect.postfix, effect.complete)
            elif isinstance(effect, TouchJson):
                self._touch_cache_file(self.json_fn)
            elif isinstance(effect, TouchSolv):
                self._touch_cache_file(self.solv_fn)
            elif isinstance(effect, EnsureCacheDir):
                create_cache_dir(self.json_fn.parent)
            elif isinstance(effect, Decompress):
                _, self._staging = decompress(self._staging)
            elif isinstance(effect, Splice):
                splice_cache_file(effect.headers, self._staging.path, self.json_fn)
            elif isinstance(effect, ReleaseStaging):
                self._release_staging()
            else:
                raise TypeError(f"Unknown finalize effect: {effect!r}")

    def _touch_cache_file(self, path: Path) -> None:
        try:
            touch(path)
        except FileNotFoundError as e:
            logger.error(f"Cache file {path} disappeared before revalidation")
            raise CacheMissingError(
                f"Cache file {path} is missing, cannot mark it as revalidated"
            ) from e

    def _report(self, postfix: str, complete: bool) -> None:
        if self._task is None:
            return
        self._task.set_postfix(postfix)
        if complete:
            self._task.set_full()
            self._task.mark_as_completed()

    def _release_staging(self) -> None:
        if self._staging is not None:
            self._staging.release()
            self._staging = None

    def cache_path(self) -> Path:
        """Get the best validated cache file.

        Returns:
            The solv cache if both caches are valid, otherwise the json cache

        Raises:
            CacheNotLoadedError: If no cache file has been validated
        """
        if self._state.json_cache_valid and self._state.solv_cache_valid:
            return self.solv_fn
        if self._state.json_cache_valid:
            return self.json_fn
        raise CacheNotLoadedError(f"Cache not loaded for {self._name}!")

    def clear_cache(self) -> None:
        """Remove both cache files if present."""
        for path in (self.json_fn, self.solv_fn):
            if remove_if_exists(path):
                logger.info(f"Removed {path}")

    def create_repo(self) -> RepoInfo:
        """Describe the loaded cache for the solver layer.

        Raises:
            CacheNotLoadedError: If no cache file has been validated
        """
        return RepoInfo(
            name=self._name,
            url=self.repodata_url,
            cache_path=str(self.cache_path()),
            add_pip_as_python_dependency=self.config.add_pip_as_python_dependency,
            etag=self._state.mod_etag.get(ETAG_KEY, ""),
            mod=self._state.mod_etag.get(MOD_KEY, ""),
        )

    def __repr__(self) -> str:
        return f"SubdirData({self._name!r}, {self.repodata_url!r}, loaded={self.loaded})"
