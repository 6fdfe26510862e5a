"""
Part Source - Single Responsibility: read a local file as fixed-size chunks.

Only one chunk is held in memory at a time.
"""
import logging
import math
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Tuple

from ..errors import SourceReadError

logger = logging.getLogger(__name__)


class PartSource:
    """
    Sequential chunk reader over one local file.

    Usage:
        with PartSource.open(path, chunk_size) as source:
            for part_number, payload in source:
                ...
    """

    def __init__(self, path: Path, handle: BinaryIO, size: int, chunk_size: Optional[int] = None):
        self._path = path
        self._handle: Optional[BinaryIO] = handle
        self._size = size
        self._chunk_size = chunk_size
        self._offset = 0

    @classmethod
    def open(cls, path: Path, chunk_size: Optional[int] = None) -> "PartSource":
        """
        Open a file for chunked reading.

        Raises:
            SourceReadError: If the path does not exist or cannot be read.
        """
        path = Path(path)
        if not path.is_file():
            raise SourceReadError(f"source file not found: {path}")
        try:
            size = path.stat().st_size
            handle = open(path, "rb")
        except OSError as exc:
            raise SourceReadError(f"cannot open {path}: {exc}", exc) from exc
        logger.debug(f"Opened {path} ({size} bytes)")
        return cls(path, handle, size, chunk_size)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def size(self) -> int:
        return self._size

    @property
    def offset(self) -> int:
        """Bytes consumed so far."""
        return self._offset

    @property
    def closed(self) -> bool:
        return self._handle is None

    def expected_parts(self, chunk_size: Optional[int] = None) -> int:
        """Number of parts the file splits into: ceil(size / chunk_size)."""
        chunk_size = self._resolve_chunk_size(chunk_size)
        return math.ceil(self._size / chunk_size)

    def next(self, chunk_size: Optional[int] = None) -> Optional[bytes]:
        """
        Read the next chunk.

        Returns:
            Up to chunk_size bytes, or None once the file is exhausted.
            Only the last chunk can be shorter than chunk_size.

        Raises:
            SourceReadError: On any read fault or if the source is closed.
        """
        chunk_size = self._resolve_chunk_size(chunk_size)
        if self._handle is None:
            raise SourceReadError(f"source is closed: {self._path}")

        buffer = bytearray()
        try:
            # A raw read may return short; keep reading until the chunk is full or EOF.
            while len(buffer) < chunk_size:
                data = self._handle.read(chunk_size - len(buffer))
                if not data:
                    break
                buffer += data
        except OSError as exc:
            raise SourceReadError(f"failed to read {self._path}: {exc}", exc) from exc

        if not buffer:
            return None
        self._offset += len(buffer)
        return bytes(buffer)

    def close(self) -> None:
        """Release the file handle. Safe to call more than once."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.debug(f"Closed {self._path}")

    def _resolve_chunk_size(self, chunk_size: Optional[int]) -> int:
        chunk_size = chunk_size or self._chunk_size
        if not chunk_size or chunk_size <= 0:
            raise ValueError("chunk_size must be a positive integer")
        return chunk_size

    def __iter__(self) -> Iterator[Tuple[int, bytes]]:
        part_number = 1
        while True:
            payload = self.next()
            if payload is None:
                return
            yield part_number, payload
            part_number += 1

    def __enter__(self) -> "PartSource":
        return self

    def __exit__(self, *args) -> None:
        self.close()
