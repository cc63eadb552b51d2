"""
Native decoder protocol constants and data shapes.
Matches the enums in libFLAC's FLAC/stream_decoder.h and FLAC/format.h.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from types import MappingProxyType


class NativeDecoderState(IntEnum):
    """FLAC__StreamDecoderState values."""
    SEARCH_FOR_METADATA = 0
    READ_METADATA = 1
    SEARCH_FOR_FRAME_SYNC = 2
    READ_FRAME = 3
    END_OF_STREAM = 4
    OGG_ERROR = 5
    SEEK_ERROR = 6
    ABORTED = 7
    MEMORY_ALLOCATION_ERROR = 8
    UNINITIALIZED = 9


class InitStatus(IntEnum):
    """FLAC__StreamDecoderInitStatus values."""
    OK = 0
    UNSUPPORTED_CONTAINER = 1
    INVALID_CALLBACKS = 2
    MEMORY_ALLOCATION_ERROR = 3
    ERROR_OPENING_FILE = 4
    ALREADY_INITIALIZED = 5


class ReadStatus(IntEnum):
    CONTINUE = 0
    END_OF_STREAM = 1
    ABORT = 2


class SeekStatus(IntEnum):
    OK = 0
    ERROR = 1
    UNSUPPORTED = 2


class TellStatus(IntEnum):
    OK = 0
    ERROR = 1
    UNSUPPORTED = 2


class LengthStatus(IntEnum):
    OK = 0
    ERROR = 1
    UNSUPPORTED = 2


class WriteStatus(IntEnum):
    CONTINUE = 0
    ABORT = 1


class ErrorStatus(IntEnum):
    """FLAC__StreamDecoderErrorStatus values."""
    LOST_SYNC = 0
    BAD_HEADER = 1
    FRAME_CRC_MISMATCH = 2
    UNPARSEABLE_STREAM = 3
    BAD_METADATA = 4


class MetadataType(IntEnum):
    """FLAC__MetadataType values."""
    STREAMINFO = 0
    PADDING = 1
    APPLICATION = 2
    SEEKTABLE = 3
    VORBIS_COMMENT = 4
    CUESHEET = 5
    PICTURE = 6


# Stream-info checksum is an MD5 digest of the decoded audio
STREAMINFO_CHECKSUM_SIZE = 16

# Bytes per sample in read_pcm() output (S16LE)
PCM_SAMPLE_WIDTH = 2
PCM_BITS_PER_SAMPLE = 16


class DecoderState(Enum):
    """Host-visible decoder state."""
    SEARCH_FOR_METADATA = "search_for_metadata"
    READ_METADATA = "read_metadata"
    SEARCH_FOR_FRAME_SYNC = "search_for_frame_sync"
    READ_FRAME = "read_frame"
    END_OF_STREAM = "end_of_stream"
    OGG_ERROR = "ogg_error"
    SEEK_ERROR = "seek_error"
    ABORTED = "aborted"
    MEMORY_ALLOCATION_ERROR = "memory_allocation_error"
    UNINITIALIZED = "uninitialized"
    UNKNOWN = "unknown"


_STATE_TABLE = MappingProxyType({
    int(native): DecoderState[native.name] for native in NativeDecoderState
})

# No frame is produced once one of these is reached
TERMINAL_STATES = frozenset({
    DecoderState.END_OF_STREAM,
    DecoderState.OGG_ERROR,
    DecoderState.SEEK_ERROR,
    DecoderState.ABORTED,
    DecoderState.MEMORY_ALLOCATION_ERROR,
    DecoderState.UNINITIALIZED,
    DecoderState.UNKNOWN,
})


def translate_state(code) -> DecoderState:
    """Map a native decoder state code to DecoderState, UNKNOWN if unrecognized."""
    try:
        return _STATE_TABLE.get(int(code), DecoderState.UNKNOWN)
    except (TypeError, ValueError, OverflowError):
        return DecoderState.UNKNOWN


@dataclass(frozen=True)
class StreamInfo:
    """Stream-level metadata from the STREAMINFO block."""
    sample_rate: int
    channels: int
    bits_per_sample: int
    total_samples: int
    checksum: bytes
    min_blocksize: int = 0
    max_blocksize: int = 0
    min_framesize: int = 0
    max_framesize: int = 0

    @property
    def duration(self) -> float:
        """Stream length in seconds, 0.0 when total_samples is unknown."""
        if self.sample_rate == 0:
            return 0.0
        return self.total_samples / self.sample_rate


@dataclass(frozen=True)
class FrameHeader:
    """Per-frame header fields needed to interpret a sample buffer."""
    channels: int
    blocksize: int
    bits_per_sample: int
    sample_rate: int = 0
