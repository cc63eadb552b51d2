"""
FrameCache - holds the newest decoded frame and the stream info.

The native decoder only guarantees its sample buffers for the duration of
the write callback, so every frame is deep-copied into memory owned by the
cache. Only the newest frame is kept; it is replaced on every write and
dropped at the start of every decode step.
"""

from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import OutOfSyncError
from .protocol import FrameHeader, StreamInfo


class FrameCache:
    """Single-slot store for the last decoded frame and the stream info."""

    def __init__(self):
        self._header: Optional[FrameHeader] = None
        self._samples: Optional[np.ndarray] = None
        self._stream_info: Optional[StreamInfo] = None
        self._frames_stored = 0

    def store_frame(self, header: FrameHeader, planes: Sequence[np.ndarray]):
        """
        Copy one decoded frame into the cache, replacing the previous one.

        Args:
            header: Frame header delivered with the samples.
            planes: One sample sequence per channel, each at least
                    header.blocksize long. Only read, never kept.
        """
        if len(planes) < header.channels:
            raise ValueError(
                f"Frame has {len(planes)} channel buffers, header says {header.channels}"
            )

        samples = np.empty((header.channels, header.blocksize), dtype=np.int32)
        for channel in range(header.channels):
            samples[channel, :] = planes[channel][:header.blocksize]

        # Header and samples are swapped in together
        self._header, self._samples = header, samples
        self._frames_stored += 1

    def store_stream_info(self, info: StreamInfo):
        """Set the stream info. A later STREAMINFO block overwrites an earlier one."""
        self._stream_info = info

    def begin_step(self):
        """Drop the cached frame before a new decode step."""
        self._header = None
        self._samples = None

    @property
    def frame(self) -> Optional[Tuple[FrameHeader, np.ndarray]]:
        """(header, samples) of the last decoded frame, or None."""
        if self._samples is None:
            return None
        return self._header, self._samples

    @property
    def has_stream_info(self) -> bool:
        return self._stream_info is not None

    @property
    def stream_info(self) -> StreamInfo:
        if self._stream_info is None:
            raise OutOfSyncError("No STREAMINFO block has been decoded")
        return self._stream_info

    @property
    def frames_stored(self) -> int:
        return self._frames_stored

    def release(self):
        """Free all cached buffers."""
        self._header = None
        self._samples = None
        self._stream_info = None
