"""
Callback table handed to the native stream decoder.

Six structural callbacks (read, seek, tell, length, eof, write) and two
informational ones (metadata, error). The native binding translates its raw
arguments into calls on this table; everything here deals in Python values.

Callbacks that run caller code are guarded: an exception cannot unwind
through libFLAC, so it is parked on the table, the callback answers ABORT,
and the decoder re-raises it once the native call has returned.
"""

import functools
import logging
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from .frame_cache import FrameCache
from .protocol import (
    ErrorStatus,
    FrameHeader,
    LengthStatus,
    MetadataType,
    ReadStatus,
    SeekStatus,
    StreamInfo,
    TellStatus,
    WriteStatus,
)
from .read_bridge import ReadBridge

logger = logging.getLogger(__name__)


def _guarded(abort_value):
    """Run a callback in a managed re-entry scope, answering abort_value on error."""
    def decorate(method):
        @functools.wraps(method)
        def wrapper(self, *args):
            self._depth += 1
            try:
                return method(self, *args)
            except BaseException as e:  # re-raised by raise_pending()
                if self._pending is None:
                    self._pending = e
                return abort_value
            finally:
                self._depth -= 1
        return wrapper
    return decorate


class CallbackTable:
    """Adapter functions satisfying the libFLAC stream decoder callback contract."""

    def __init__(
        self,
        cache: FrameCache,
        bridge: ReadBridge,
        error_callback: Optional[Callable[[ErrorStatus], None]] = None,
    ):
        self._cache = cache
        self._bridge = bridge
        self._error_callback = error_callback
        self._pending: Optional[BaseException] = None
        self._depth = 0
        self.last_error: Optional[ErrorStatus] = None
        self.error_count = 0

    @property
    def in_callback(self) -> bool:
        """True while caller code is running inside a native callback."""
        return self._depth > 0

    # ------------------------------------------------------------------
    # Structural callbacks
    # ------------------------------------------------------------------

    @_guarded((ReadStatus.ABORT, 0))
    def read(self, buffer) -> Tuple[ReadStatus, int]:
        return self._bridge.fill(buffer)

    def seek(self, absolute_byte_offset: int) -> SeekStatus:
        return SeekStatus.UNSUPPORTED

    def tell(self) -> Tuple[TellStatus, int]:
        return TellStatus.UNSUPPORTED, 0

    def length(self) -> Tuple[LengthStatus, int]:
        return LengthStatus.UNSUPPORTED, 0

    def eof(self) -> bool:
        # End of stream is signalled by a zero-byte read instead
        return False

    @_guarded(WriteStatus.ABORT)
    def write(self, header: FrameHeader, planes: Sequence[np.ndarray]) -> WriteStatus:
        self._cache.store_frame(header, planes)
        return WriteStatus.CONTINUE

    # ------------------------------------------------------------------
    # Informational callbacks
    # ------------------------------------------------------------------

    def metadata(self, block_type: int, stream_info: Optional[StreamInfo]):
        if block_type != MetadataType.STREAMINFO or stream_info is None:
            return
        logger.debug(
            f"[CallbackTable] STREAMINFO: {stream_info.sample_rate}Hz, "
            f"{stream_info.channels}ch, {stream_info.bits_per_sample}bit"
        )
        self._cache.store_stream_info(stream_info)

    @_guarded(None)
    def error(self, status: int):
        try:
            status = ErrorStatus(status)
        except ValueError:
            logger.debug(f"[CallbackTable] Unrecognized error status {status}")
        self.last_error = status
        self.error_count += 1
        logger.warning(f"[CallbackTable] Decoder error: {getattr(status, 'name', status)}")
        if self._error_callback:
            self._error_callback(status)

    # ------------------------------------------------------------------
    # Deferred exceptions
    # ------------------------------------------------------------------

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def raise_pending(self):
        """Re-raise an exception parked by a guarded callback, if any."""
        exc, self._pending = self._pending, None
        if exc is not None:
            raise exc

    def clear_pending(self):
        self._pending = None
