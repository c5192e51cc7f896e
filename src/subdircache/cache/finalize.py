"""Planning the outcome of a finished repodata transfer.

:func:`plan_finalize` is a pure function: given what the transfer reported
and the current cache state, it returns the new cache state and the ordered
filesystem effects needed to get there. :class:`SubdirData` applies them.
"""

import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import List, Tuple, Union

from subdircache.base.target import TransferOutcome
from subdircache.cache.exceptions import UnhandledStatusError
from subdircache.cache.metadata import make_mod_etag
from subdircache.cache.validation import age_seconds, is_solv_valid
from subdircache.utils import ModEtagHeaders

logger = logging.getLogger(__name__)

# 0 is what local file transfers report
HANDLED_STATUSES = (0, 200, 304)


@dataclass(frozen=True)
class CacheState:
    """Validity flags and headers of one subdirectory cache."""

    loaded: bool = False
    download_complete: bool = False
    json_cache_valid: bool = False
    solv_cache_valid: bool = False
    mod_etag: ModEtagHeaders = None

    def __post_init__(self):
        if self.mod_etag is None:
            object.__setattr__(self, "mod_etag", ModEtagHeaders())


@dataclass(frozen=True)
class ReportStatus:
    postfix: str
    complete: bool = False


@dataclass(frozen=True)
class TouchJson:
    pass


@dataclass(frozen=True)
class TouchSolv:
    pass


@dataclass(frozen=True)
class EnsureCacheDir:
    pass


@dataclass(frozen=True)
class Decompress:
    pass


@dataclass(frozen=True)
class Splice:
    headers: ModEtagHeaders


@dataclass(frozen=True)
class ReleaseStaging:
    pass


Effect = Union[
    ReportStatus, TouchJson, TouchSolv, EnsureCacheDir, Decompress, Splice, ReleaseStaging
]


def plan_finalize(
    outcome: TransferOutcome,
    state: CacheState,
    json_age: timedelta,
    solv_age: timedelta,
    compressed: bool,
) -> Tuple[CacheState, List[Effect]]:
    """Decide what a finished transfer means for the cache.

    Args:
        outcome: What the transfer reported
        state: Cache state before finalizing
        json_age: Current age of the json cache
        solv_age: Current age of the solv cache
        compressed: Whether the staged payload is bzip2 compressed

    Returns:
        Tuple of (new state, effects to apply in order)

    Raises:
        UnhandledStatusError: If the HTTP status is not 0, 200 or 304
    """
    if outcome.failed:
        logger.info(
            f"Unable to retrieve repodata (response: {outcome.http_status}) "
            f"for {outcome.url}"
        )
        return replace(state, loaded=False), [
            ReportStatus(f"{outcome.http_status} Failed", complete=True)
        ]

    logger.info(f"HTTP response code: {outcome.http_status}")
    if outcome.http_status not in HANDLED_STATUSES:
        logger.error(f"HTTP response code {outcome.http_status} cannot be handled")
        raise UnhandledStatusError(outcome.http_status, outcome.url)

    if outcome.http_status == 304:
        logger.info(
            f"Solv age: {age_seconds(solv_age)}, JSON age: {age_seconds(json_age)}"
        )
        solv_valid = is_solv_valid(solv_age, json_age)
        effects: List[Effect] = [TouchJson()]
        if solv_valid:
            effects.append(TouchSolv())
        effects += [ReleaseStaging(), ReportStatus("No change", complete=True)]
        return (
            replace(
                state,
                download_complete=True,
                json_cache_valid=True,
                solv_cache_valid=solv_valid,
                loaded=True,
            ),
            effects,
        )

    logger.info(f"Finalized transfer: {outcome.url}")
    headers = make_mod_etag(
        outcome.url, outcome.etag, outcome.mod, outcome.cache_control
    )
    effects = [EnsureCacheDir()]
    if compressed:
        effects += [ReportStatus("Decomp..."), Decompress()]
    effects += [
        ReportStatus("Finalizing..."),
        Splice(headers),
        ReleaseStaging(),
        TouchJson(),
        ReportStatus("Done", complete=True),
    ]
    return (
        CacheState(
            loaded=True,
            download_complete=True,
            json_cache_valid=True,
            solv_cache_valid=False,
            mod_etag=headers,
        ),
        effects,
    )
