#!/usr/bin/env python3
"""Positioned fixed-size reads from a GeoJSON file."""
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)


class ChunkReader:
    """Read `chunk_size` bytes at arbitrary offsets; an empty result means EOF.

    Use as a context manager so the descriptor is released on every exit path:

        with ChunkReader(path, 2 * 1024 * 1024) as reader:
            data = reader.read_at(0)
    """

    def __init__(self, path, chunk_size: int):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.path = os.fspath(path)
        self.chunk_size = chunk_size
        self._fh = None

    def __enter__(self) -> "ChunkReader":
        self._fh = open(self.path, 'rb')
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            logger.debug(f"Closed {self.path}")

    @property
    def closed(self) -> bool:
        return self._fh is None

    @property
    def size(self) -> int:
        return os.fstat(self._require_open().fileno()).st_size

    def read_at(self, offset: int, size: Optional[int] = None) -> bytes:
        """Return up to `size` (default: chunk size) bytes starting at `offset`."""
        fh = self._require_open()
        if offset < 0:
            raise ValueError(f"negative offset {offset}")
        fh.seek(offset)
        return fh.read(self.chunk_size if size is None else size)

    def _require_open(self):
        if self._fh is None:
            raise ValueError(f"reader for {self.path} is not open")
        return self._fh
