"""
Read Bridge - feeds compressed bytes from caller code into the native decoder.

The caller supplies a function ``read_fn(max_bytes)`` returning either a
``(data, length)`` pair or a bytes-like object. The bridge copies at most
``max_bytes`` bytes into the buffer handed over by libFLAC.
"""

import logging
from typing import Callable, Optional, Tuple, Union

from .errors import DecoderClosedError
from .protocol import ReadStatus

logger = logging.getLogger(__name__)

ReadResult = Union[Tuple[bytes, int], bytes, bytearray, memoryview]
ReadFunction = Callable[[int], ReadResult]


class ReadBridge:
    """Adapts a caller read function to the native read callback."""

    def __init__(self, read_fn: ReadFunction):
        self._read_fn: Optional[ReadFunction] = read_fn
        self._bytes_read = 0
        self._truncated_reads = 0

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    @property
    def truncated_reads(self) -> int:
        return self._truncated_reads

    def fill(self, buffer) -> Tuple[ReadStatus, int]:
        """
        Fill a native buffer from the caller's read function.

        Args:
            buffer: Writable buffer (memoryview over native memory, bytearray).
                    Its length is the byte count requested by the decoder.

        Returns:
            (status, byte count actually copied). A zero-length answer is
            reported as END_OF_STREAM.
        """
        if self._read_fn is None:
            raise DecoderClosedError("Read bridge has been released")

        capacity = len(buffer)
        if capacity == 0:
            return ReadStatus.CONTINUE, 0

        data, length = _unpack(self._read_fn(capacity))

        if length < 0:
            raise ValueError(f"read function returned negative length {length}")
        if length > capacity:
            self._truncated_reads += 1
            logger.warning(
                f"[ReadBridge] read returned {length} bytes for a {capacity}-byte request, truncating"
            )
            length = capacity
        # Never copy past what was actually handed back
        length = min(length, len(data))

        if length == 0:
            return ReadStatus.END_OF_STREAM, 0

        buffer[:length] = data[:length]
        self._bytes_read += length
        return ReadStatus.CONTINUE, length

    def release(self):
        """Drop the reference to the caller's read function."""
        self._read_fn = None


def _unpack(result: ReadResult) -> Tuple[memoryview, int]:
    if isinstance(result, tuple):
        data, length = result
        view = memoryview(data).cast("B")
        return view, int(length)
    view = memoryview(result).cast("B")
    return view, len(view)
