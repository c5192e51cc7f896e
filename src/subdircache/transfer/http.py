"""HTTP transfer target built on requests."""

import logging
from http.client import IncompleteRead
from pathlib import Path
from typing import Optional, Tuple

from requests import Session
from requests.exceptions import (
    ChunkedEncodingError,
    ContentDecodingError,
    RequestException,
)
from urllib3.exceptions import DecodeError, ProtocolError

from subdircache.base.target import TransferTarget

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536
DEFAULT_TIMEOUT = (9.15, 60.0)
DEFAULT_HEADERS = {
    "Accept-Encoding": "gzip, deflate",
}
STREAM_ERRORS = (
    ChunkedEncodingError,
    ContentDecodingError,
    DecodeError,
    ProtocolError,
    IncompleteRead,
)


def build_session() -> Session:
    session = Session()
    session.headers.update(DEFAULT_HEADERS)
    return session


class HttpTransferTarget(TransferTarget):
    """Conditional GET of a repodata file over HTTP(S).

    A 304 response leaves ``destination`` untouched. Network failures are
    reported through ``result`` instead of raising so the cache manager can
    decide whether they are fatal.
    """

    def __init__(
        self,
        name: str,
        url: str,
        destination: Path,
        *,
        session: Optional[Session] = None,
        timeout: Tuple[float, float] = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(name, url, destination)
        self._session = session or build_session()
        self._timeout = timeout

    def perform(self) -> None:
        logger.info(f"Downloading {self.url}")
        try:
            with self._session.get(
                self.url,
                headers=dict(self.request_headers),
                stream=True,
                timeout=self._timeout,
            ) as response:
                self.http_status = response.status_code
                self.etag = response.headers.get("ETag", "") or ""
                self.mod = response.headers.get("Last-Modified", "") or ""
                self.cache_control = response.headers.get("Cache-Control", "") or ""

                if response.status_code != 200:
                    logger.info(f"HTTP {response.status_code} for {self.url}")
                    return

                try:
                    with self.destination.open("wb") as handle:
                        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                            if chunk:
                                handle.write(chunk)
                                self._advance(len(chunk))
                except STREAM_ERRORS as exc:
                    raise RequestException(
                        f"Stream error while downloading {self.url}: {exc}"
                    ) from exc
        except RequestException as exc:
            logger.warning(f"Transfer of {self.url} failed: {exc}")
            self.result = 1
        except OSError as exc:
            logger.warning(f"Could not write {self.destination}: {exc}")
            self.result = 1

    def _advance(self, nbytes: int) -> None:
        if self.progress is not None:
            self.progress.advance(nbytes)
