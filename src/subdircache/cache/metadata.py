"""Revalidation headers embedded at the head of repodata cache files.

A cache file is the original repodata document with four string keys spliced
in front of its own keys::

    {"_url": "https://conda.anaconda.org/conda-forge/linux-64",
     "_etag": "W/\\"6092e6a2b6cec6ea5aade4e177c3edda-8\\"",
     "_mod": "Sat, 04 Apr 2020 03:29:49 GMT",
     "_cache_control": "public, max-age=1200",
     "info": {...}, "packages": {...}}

Reading and writing those keys never parses the (possibly huge) payload.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from subdircache.cache.exceptions import CacheWriteError
from subdircache.utils import (
    CACHE_CONTROL_KEY,
    ETAG_KEY,
    HEADER_KEYS,
    MOD_KEY,
    URL_KEY,
    ModEtagHeaders,
)

logger = logging.getLogger(__name__)

# Each key/value pair is delimited by four unescaped quotes
QUOTES_PER_FIELD = 4
HEADER_QUOTES = QUOTES_PER_FIELD * len(HEADER_KEYS)

READ_CHUNK = 4096
COPY_BLOCKSIZE = 16384

QUOTE = ord('"')
BACKSLASH = ord("\\")


def extract_subjson(stream) -> Optional[bytes]:
    """Read the leading header object from a binary stream.

    Scans until the closing quote of the fourth value and closes the object
    with a synthetic ``"}``.

    Args:
        stream: Binary file-like object positioned at the start of the document

    Returns:
        Bytes of a standalone JSON object, or None if the stream ended first
    """
    result = bytearray()
    escaped = False
    quotes = 0
    while True:
        chunk = stream.read(READ_CHUNK)
        if not chunk:
            return None
        for i, byte in enumerate(chunk):
            if escaped:
                escaped = False
            elif byte == BACKSLASH:
                escaped = True
            elif byte == QUOTE:
                quotes += 1
                if quotes == HEADER_QUOTES:
                    result += chunk[:i]
                    return bytes(result) + b'"}'
        result += chunk


def read_mod_and_etag(cache_file: Union[str, Path]) -> ModEtagHeaders:
    """Read the revalidation headers of a cache file without parsing it whole.

    Args:
        cache_file: Path to the json cache

    Returns:
        The four header fields, or an empty dict if they could not be read
    """
    try:
        with open(cache_file, "rb") as f:
            raw = extract_subjson(f)
    except OSError as e:
        logger.warning(f"Could not read mod / etag header of {cache_file}: {e}")
        return ModEtagHeaders()

    if raw is None:
        logger.warning(f"Could not find mod / etag header in {cache_file}")
        return ModEtagHeaders()

    try:
        parsed = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Could not parse mod / etag header!")
        return ModEtagHeaders()

    if not has_header_layout(parsed):
        logger.warning(
            f"Unexpected header layout in {cache_file}: {list(parsed)[:len(HEADER_KEYS)]}"
        )
        return ModEtagHeaders()

    return ModEtagHeaders(**parsed)


def has_header_layout(parsed: object) -> bool:
    """Check that a parsed header holds exactly the four string keys in file order."""
    if not isinstance(parsed, dict):
        return False
    if tuple(parsed) != HEADER_KEYS:
        return False
    return all(isinstance(v, str) for v in parsed.values())


def make_mod_etag(
    url: str,
    etag: Optional[str] = None,
    mod: Optional[str] = None,
    cache_control: Optional[str] = None,
) -> ModEtagHeaders:
    """Build header metadata in canonical key order.

    Missing values are stored as empty strings so every cache file carries
    all four keys.
    """
    return ModEtagHeaders(
        **{
            URL_KEY: url,
            ETAG_KEY: etag or "",
            MOD_KEY: mod or "",
            CACHE_CONTROL_KEY: cache_control or "",
        }
    )


def header_prefix(headers: ModEtagHeaders) -> bytes:
    """Serialize headers as an unterminated JSON object ending in a comma.

    Examples:
        >>> header_prefix(make_mod_etag('u', 'e', 'm', 'c'))
        b'{"_url":"u","_etag":"e","_mod":"m","_cache_control":"c",'
    """
    if not has_header_layout(dict(headers)):
        raise ValueError(f"Header metadata must have keys {HEADER_KEYS}")
    dumped = json.dumps(headers, separators=(",", ":"))
    return (dumped[:-1] + ",").encode("utf-8")


def _payload_is_empty_object(staging) -> bool:
    """Peek past the opening brace to see if the payload is ``{}``."""
    staging.seek(1)
    rest = staging.read(READ_CHUNK).lstrip()
    staging.seek(1)
    return rest.startswith(b"}")


def splice_cache_file(
    headers: ModEtagHeaders,
    staging_path: Union[str, Path],
    final_path: Union[str, Path],
) -> None:
    """Write the final cache file as headers followed by the staged payload.

    The staged document's opening brace is replaced by the header prefix, so
    the output is one JSON object without the payload ever being parsed.

    Args:
        headers: Revalidation metadata for the new cache file
        staging_path: Downloaded (and decompressed) repodata
        final_path: Cache file to (over)write

    Raises:
        CacheWriteError: If the final file cannot be opened or written. A
            partially written final file is removed first.
    """
    prefix = header_prefix(headers)
    final_path = Path(final_path)

    try:
        final_file = open(final_path, "wb")
    except OSError as e:
        logger.error(f"Could not open file {final_path}: {e}")
        raise CacheWriteError(f"Could not open cache file {final_path}: {e}") from e

    try:
        with final_file, open(staging_path, "rb") as staging:
            first = staging.read(1)
            if first != b"{":
                logger.warning(
                    f"Staged repodata for {headers.get(URL_KEY)} does not start "
                    f"with '{{', cache file {final_path} will not be valid JSON"
                )
            if first == b"{" and _payload_is_empty_object(staging):
                prefix = prefix[:-1]
            final_file.write(prefix)
            while True:
                block = staging.read(COPY_BLOCKSIZE)
                if not block:
                    break
                final_file.write(block)
    except OSError as e:
        logger.error(f"Could not write out repodata file '{final_path}': {e}")
        try:
            final_path.unlink()
        except FileNotFoundError:
            pass
        raise CacheWriteError(
            f"Could not write out repodata file '{final_path}': {e}"
        ) from e
