"""Concrete transfer targets and a driver that runs many of them at once."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from requests import Session

from subdircache.base.target import TransferError, TransferTarget
from subdircache.transfer.http import DEFAULT_TIMEOUT, HttpTransferTarget, build_session
from subdircache.transfer.local import LocalFileTarget
from subdircache.utils import is_file_url

logger = logging.getLogger(__name__)


def make_target(
    name: str,
    url: str,
    destination: Path,
    session: Optional[Session] = None,
    timeout: Tuple[float, float] = DEFAULT_TIMEOUT,
) -> TransferTarget:
    """Pick a transfer target implementation for a URL.

    Examples:
        >>> make_target('noarch', 'file:///srv/ch/noarch/repodata.json', path)
        LocalFileTarget('noarch', 'file:///srv/ch/noarch/repodata.json')
    """
    if is_file_url(url):
        return LocalFileTarget(name, url, destination)
    return HttpTransferTarget(name, url, destination, session=session, timeout=timeout)


def download_all(
    targets: Iterable[TransferTarget],
    max_workers: int = 5,
) -> Dict[str, bool]:
    """Run targets concurrently and finalize each one once.

    Failures of targets with ``ignore_failure`` set are logged and reported
    as False. The first non-tolerated failure is raised after every target
    has finished.

    Args:
        targets: Armed transfer targets (None entries are skipped)
        max_workers: Thread pool size

    Returns:
        Mapping of target name to whether it finalized successfully

    Raises:
        TransferError: If a target that must succeed failed
    """
    pending: List[TransferTarget] = [t for t in targets if t is not None]
    results: Dict[str, bool] = {}
    errors: List[Exception] = []

    if not pending:
        return results

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(target.run): target for target in pending}
        for future in as_completed(futures):
            target = futures[future]
            try:
                results[target.name] = future.result()
            except TransferError as e:
                logger.error(str(e))
                results[target.name] = False
                errors.append(e)
            except Exception as e:
                logger.error(f"Unexpected error finalizing {target.url}: {e}")
                results[target.name] = False
                errors.append(e)
            else:
                if not results[target.name]:
                    logger.warning(f"Ignoring failure to retrieve {target.url}")

    if errors:
        raise errors[0]

    return results


__all__ = [
    "HttpTransferTarget",
    "LocalFileTarget",
    "build_session",
    "download_all",
    "make_target",
]
