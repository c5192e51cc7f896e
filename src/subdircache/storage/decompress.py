"""Staging files and streaming bzip2 decompression of downloaded repodata."""

import bz2
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Tuple, Union

logger = logging.getLogger(__name__)

BLOCKSIZE = 16384


class DecompressionError(Exception):
    """Raised when a compressed stream breaks after its header was read."""

    pass


class StagingFile:
    """Temporary file owned by a single refresh attempt.

    The file is created on construction and deleted by :meth:`release`.
    Once released the handle must not be used again.

    Examples:
        >>> staging = StagingFile()
        >>> staging.path.write_bytes(b'{}')
        2
        >>> staging.release()
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        fd, name = tempfile.mkstemp(
            prefix="subdircache-", suffix=".tmp", dir=directory
        )
        os.close(fd)
        self._path: Optional[Path] = Path(name)

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Staging file has already been released")
        return self._path

    @property
    def released(self) -> bool:
        return self._path is None

    def release(self) -> None:
        """Delete the file. Calling twice is a no-op."""
        if self._path is None:
            return
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        finally:
            self._path = None

    def __enter__(self) -> "StagingFile":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"StagingFile({self._path})"


def decompress_raw(src: Union[str, Path], dst: Union[str, Path]) -> bool:
    """Stream a bzip2 file into ``dst`` in fixed-size blocks.

    Args:
        src: Compressed input file
        dst: Output file (created or truncated)

    Returns:
        False if the input cannot be opened or its stream header cannot be
        read, True once every concatenated stream was written.

    Raises:
        DecompressionError: If the data is corrupt past its first block,
            including trailing bytes that are not another bzip2 stream
    """
    logger.info(f"Decompressing from {src} to {dst}")

    decompressor = bz2.BZ2Decompressor()
    try:
        src_file = open(src, "rb")
    except OSError as e:
        logger.warning(f"Could not open {src}: {e}")
        return False

    with src_file, open(dst, "wb") as out_file:
        first = src_file.read(BLOCKSIZE)
        if not first:
            return False
        try:
            data = decompressor.decompress(first)
        except (OSError, ValueError, EOFError) as e:
            logger.warning(f"Could not read archive header of {src}: {e}")
            return False
        out_file.write(data)

        while True:
            if decompressor.eof:
                # Concatenated streams (pbzip2, lbzip2) continue after the first
                block = decompressor.unused_data or src_file.read(BLOCKSIZE)
                if not block:
                    break
                decompressor = bz2.BZ2Decompressor()
            else:
                block = src_file.read(BLOCKSIZE)
                if not block:
                    raise DecompressionError(
                        f"Could not read archive: unexpected end of stream in {src}"
                    )
            try:
                data = decompressor.decompress(block)
            except (OSError, ValueError, EOFError) as e:
                raise DecompressionError(f"Could not read archive: {e}") from e
            out_file.write(data)

    return True


def decompress(staging: StagingFile) -> Tuple[bool, StagingFile]:
    """Decompress a staging file into a fresh staging file.

    The input handle is consumed on success. On failure the decoded copy is
    discarded and the original handle (still holding the raw bytes) is
    returned, so the caller always owns exactly one live handle.

    Args:
        staging: Staging file holding bzip2 data

    Returns:
        Tuple of (success, staging file to continue with)
    """
    logger.info("Decompressing metadata")
    decoded = StagingFile(staging.path.parent)
    try:
        ok = decompress_raw(staging.path, decoded.path)
    except DecompressionError:
        decoded.release()
        raise

    if not ok:
        logger.warning(f"Could not decompress {staging.path}")
        decoded.release()
        return False, staging

    staging.release()
    return True, decoded
