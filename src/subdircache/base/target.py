"""Base interface for transfer targets.

A transfer target performs one conditional GET of a repodata file into a
destination path and reports how it went. The cache manager never talks to
the network itself; it arms a target and is called back once the target has
finished.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from subdircache.utils import ETAG_KEY, MOD_KEY, ModEtagHeaders


class TransferError(Exception):
    """Raised when a transfer fails and its failure is not tolerated."""

    pass


@dataclass(frozen=True)
class TransferOutcome:
    """Immutable snapshot of a finished transfer.

    Attributes:
        url: Requested URL
        result: 0 on success, nonzero when the transfer itself failed
        http_status: HTTP status code (0 for local files)
        etag: Response ETag header
        mod: Response Last-Modified header
        cache_control: Response Cache-Control header
    """

    url: str
    result: int = 0
    http_status: int = 0
    etag: str = ""
    mod: str = ""
    cache_control: str = ""

    @property
    def failed(self) -> bool:
        return self.result != 0 or self.http_status >= 400


class TransferTarget(ABC):
    """Abstract base class for a single repodata download.

    Subclasses implement :meth:`perform`, which must fill in ``result``,
    ``http_status`` and the response header attributes. Callers drive a
    target with :meth:`run`, which performs the transfer and then invokes the
    finalize callback exactly once.

    Examples:
        >>> class StaticTarget(TransferTarget):
        ...     def perform(self):
        ...         self.destination.write_bytes(b'{"packages": {}}')
        ...         self.http_status = 200
        >>> target = StaticTarget('noarch', 'https://example.org/noarch/repodata.json', path)
        >>> target.set_finalize_callback(lambda t: True)
        >>> target.run()
        True
    """

    def __init__(self, name: str, url: str, destination: Path):
        self.name = name
        self.url = url
        self.destination = Path(destination)

        self.result: int = 0
        self.http_status: int = 0
        self.etag: str = ""
        self.mod: str = ""
        self.cache_control: str = ""

        self.ignore_failure: bool = False
        self.request_headers: Dict[str, str] = {}
        self.progress: Optional[Any] = None

        self._finalize_callback: Optional[Callable[["TransferTarget"], bool]] = None
        self._finalized = False

    @abstractmethod
    def perform(self) -> None:
        """Run the transfer, writing the body to ``destination``.

        Must not raise for ordinary network failures; set ``result`` to a
        nonzero value instead.
        """
        pass

    def set_ignore_failure(self, ignore: bool) -> None:
        self.ignore_failure = ignore

    def set_progress(self, progress: Any) -> None:
        self.progress = progress

    def set_finalize_callback(self, callback: Callable[["TransferTarget"], bool]) -> None:
        self._finalize_callback = callback

    def set_mod_etag_headers(self, mod_etag: ModEtagHeaders) -> None:
        """Turn cached revalidation metadata into conditional request headers.

        Args:
            mod_etag: Headers read from the existing cache file (may be empty)
        """
        self.request_headers = {}
        etag = mod_etag.get(ETAG_KEY)
        if etag:
            self.request_headers["If-None-Match"] = etag
        mod = mod_etag.get(MOD_KEY)
        if mod:
            self.request_headers["If-Modified-Since"] = mod

    @property
    def finalized(self) -> bool:
        return self._finalized

    def outcome(self) -> TransferOutcome:
        """Snapshot the current transfer result."""
        return TransferOutcome(
            url=self.url,
            result=self.result,
            http_status=self.http_status,
            etag=self.etag or "",
            mod=self.mod or "",
            cache_control=self.cache_control or "",
        )

    def finish(self) -> bool:
        """Invoke the finalize callback.

        Returns:
            The callback's result, or True when no callback is registered

        Raises:
            TransferError: If the target was already finalized
        """
        if self._finalized:
            raise TransferError(f"Transfer for {self.url} was already finalized")
        self._finalized = True
        if self._finalize_callback is None:
            return True
        return self._finalize_callback(self)

    def run(self) -> bool:
        """Perform the transfer and finalize it.

        Returns:
            True if the finalized transfer succeeded

        Raises:
            TransferError: If the transfer failed and failures are not ignored
        """
        self.perform()
        ok = self.finish()
        if not ok and not self.ignore_failure:
            raise TransferError(
                f"Could not retrieve {self.url} "
                f"(result: {self.result}, HTTP status: {self.http_status})"
            )
        return ok

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.url!r})"
