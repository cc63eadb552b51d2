"""Exceptions raised by the FLAC stream decoder binding."""

from typing import Optional


class FlacError(Exception):
    """Base class for all flacstream errors."""


class LibraryNotFoundError(FlacError):
    """libFLAC could not be located or loaded."""


class AllocationError(FlacError, MemoryError):
    """The native decoder instance could not be constructed."""


class InitializationError(FlacError):
    """FLAC__stream_decoder_init_stream() reported a failure."""

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        super().__init__(message or f"Decoder initialization failed (status {status})")


class OutOfSyncError(FlacError):
    """Stream info was requested before a STREAMINFO block was seen."""


class DecoderClosedError(FlacError):
    """An operation was attempted on a closed decoder."""


class DecoderBusyError(FlacError):
    """The decoder was closed from inside one of its own callbacks."""
