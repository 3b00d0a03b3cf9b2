from __future__ import annotations

import bz2
from typing import BinaryIO

from .constants import DEFAULT_CHUNK_SIZE, DEFAULT_COMPRESS_LEVEL
from .errors import InvalidFormatError


class CompressingWriter:
    """Write-side bzip2 filter. Closing emits the end-of-stream marker but
    leaves ``lower`` open; the owner closes layers in reverse order."""

    def __init__(self, lower: BinaryIO, level: int = DEFAULT_COMPRESS_LEVEL):
        if not 1 <= level <= 9:
            raise ValueError("compress level must be between 1 and 9")
        self.lower = lower
        self._compressor = bz2.BZ2Compressor(level)
        self.closed = False

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed compressing filter")
        out = self._compressor.compress(data)
        if out:
            self.lower.write(out)
        return len(data)

    def flush(self) -> None:
        # bz2 cannot flush mid-block; only the lower layer is flushed
        flush = getattr(self.lower, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.lower.write(self._compressor.flush())
        self.flush()


class DecompressingReader:
    """Read-side bzip2 filter.

    Output is produced in bounded steps so a small hostile input cannot force a
    large allocation. Bytes after the compressed end-of-stream are ignored.
    """

    def __init__(self, lower: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.lower = lower
        self.chunk_size = chunk_size
        self._decompressor = bz2.BZ2Decompressor()
        self._buffer = bytearray()

    @property
    def eof(self) -> bool:
        return self._decompressor.eof and not self._buffer

    def _fill(self) -> bool:
        """Decompress one step into the buffer; False once the stream has ended."""
        d = self._decompressor
        if d.eof:
            return False
        if d.needs_input:
            raw = self.lower.read(self.chunk_size)
            if not raw:
                raise InvalidFormatError("Compressed stream ended unexpectedly")
        else:
            raw = b""
        try:
            self._buffer += d.decompress(raw, max_length=self.chunk_size)
        except OSError as exc:
            # bz2 reports corrupt data as OSError; channel errors never reach here
            raise InvalidFormatError(f"Corrupt compressed stream: {exc}") from exc
        return True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            while self._fill():
                pass
        else:
            while len(self._buffer) < size and self._fill():
                pass
            if len(self._buffer) > size:
                out = bytes(self._buffer[:size])
                del self._buffer[:size]
                return out
        out = bytes(self._buffer)
        self._buffer.clear()
        return out

    def drain(self) -> int:
        """Consume and discard everything up to the end-of-stream marker."""
        total = len(self._buffer)
        self._buffer.clear()
        while self._fill():
            total += len(self._buffer)
            self._buffer.clear()
        return total
