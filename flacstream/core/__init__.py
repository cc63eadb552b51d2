"""Core module - libFLAC binding, callback protocol, frame cache, and read bridge."""

from .callbacks import CallbackTable
from .errors import (
    AllocationError,
    DecoderBusyError,
    DecoderClosedError,
    FlacError,
    InitializationError,
    LibraryNotFoundError,
    OutOfSyncError,
)
from .frame_cache import FrameCache
from .protocol import (
    DecoderState,
    ErrorStatus,
    FrameHeader,
    StreamInfo,
    TERMINAL_STATES,
    translate_state,
)
from .read_bridge import ReadBridge

__all__ = [
    'CallbackTable',
    'FrameCache',
    'ReadBridge',
    'DecoderState',
    'ErrorStatus',
    'FrameHeader',
    'StreamInfo',
    'TERMINAL_STATES',
    'translate_state',
    'FlacError',
    'AllocationError',
    'DecoderBusyError',
    'DecoderClosedError',
    'InitializationError',
    'LibraryNotFoundError',
    'OutOfSyncError',
]
