"""flacstream - pull-style FLAC stream decoding on top of libFLAC."""

from flacstream.core import (
    AllocationError,
    DecoderBusyError,
    DecoderClosedError,
    DecoderState,
    FlacError,
    InitializationError,
    LibraryNotFoundError,
    OutOfSyncError,
    StreamInfo,
)
from flacstream.core.libflac import load_libflac
from flacstream.media import FlacDecoder

__version__ = "0.1.0"

__all__ = [
    'FlacDecoder',
    'DecoderState',
    'StreamInfo',
    'load_libflac',
    'FlacError',
    'AllocationError',
    'DecoderBusyError',
    'DecoderClosedError',
    'InitializationError',
    'LibraryNotFoundError',
    'OutOfSyncError',
]
