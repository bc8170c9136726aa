from __future__ import annotations

"""
Per-session audio chunk accumulator.

Fragments are opaque bytes kept in arrival order; a flush hands back one
concatenated unit and leaves an empty buffer behind for the next unit.
"""

from typing import Optional


class ChunkAccumulator:
    def __init__(self, *, max_bytes: Optional[int] = None) -> None:
        self._max_bytes = int(max_bytes) if max_bytes and max_bytes > 0 else None
        self._chunks: list[bytes] = []
        self._size = 0

    @property
    def max_bytes(self) -> Optional[int]:
        return self._max_bytes

    @property
    def pending_chunks(self) -> int:
        return len(self._chunks)

    @property
    def pending_bytes(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return not self._chunks

    def would_overflow(self, chunk: bytes) -> bool:
        if self._max_bytes is None:
            return False
        return self._size + len(chunk) > self._max_bytes

    def append(self, chunk: bytes) -> None:
        if self.would_overflow(chunk):
            raise OverflowError(f"chunk buffer limit of {self._max_bytes} bytes reached")
        self._chunks.append(bytes(chunk))
        self._size += len(chunk)

    def flush(self) -> bytes:
        # Read and reset without yielding so no append can land in between.
        unit = b"".join(self._chunks)
        self._chunks = []
        self._size = 0
        return unit

    def clear(self) -> None:
        self._chunks = []
        self._size = 0
