"""
ctypes binding to libFLAC's stream decoder.

Only the slice of the API needed for forward-only stream decoding is bound:
new/delete, init_stream, the two processing entry points, state queries and
MD5 checking. Native callback arguments are converted into plain Python
values here and handed to a CallbackTable.

ctypes releases the interpreter lock for every foreign call and takes it
back whenever libFLAC calls into one of the thunks below, so other Python
threads keep running while a decode step blocks in native code.
"""

import ctypes
import ctypes.util
import functools
import logging
import os
import platform
from typing import List, Optional

import numpy as np

from .callbacks import CallbackTable
from .errors import AllocationError, LibraryNotFoundError
from .protocol import (
    LengthStatus,
    MetadataType,
    STREAMINFO_CHECKSUM_SIZE,
    FrameHeader,
    StreamInfo,
    TellStatus,
)

logger = logging.getLogger(__name__)

LIBFLAC_ENV_VAR = "FLACSTREAM_LIBFLAC"


# ----------------------------------------------------------------------
# Native structures
# ----------------------------------------------------------------------

class FrameHeaderStruct(ctypes.Structure):
    """Leading fields of FLAC__FrameHeader (first member of FLAC__Frame)."""
    _fields_ = [
        ("blocksize", ctypes.c_uint32),
        ("sample_rate", ctypes.c_uint32),
        ("channels", ctypes.c_uint32),
        ("channel_assignment", ctypes.c_int),
        ("bits_per_sample", ctypes.c_uint32),
    ]


class StreamInfoStruct(ctypes.Structure):
    """FLAC__StreamMetadata_StreamInfo."""
    _fields_ = [
        ("min_blocksize", ctypes.c_uint32),
        ("max_blocksize", ctypes.c_uint32),
        ("min_framesize", ctypes.c_uint32),
        ("max_framesize", ctypes.c_uint32),
        ("sample_rate", ctypes.c_uint32),
        ("channels", ctypes.c_uint32),
        ("bits_per_sample", ctypes.c_uint32),
        ("total_samples", ctypes.c_uint64),
        ("md5sum", ctypes.c_ubyte * STREAMINFO_CHECKSUM_SIZE),
    ]


class _MetadataData(ctypes.Union):
    _fields_ = [
        ("stream_info", StreamInfoStruct),
    ]


class StreamMetadataStruct(ctypes.Structure):
    """Leading fields of FLAC__StreamMetadata."""
    _fields_ = [
        ("type", ctypes.c_int),
        ("is_last", ctypes.c_int),
        ("length", ctypes.c_uint32),
        ("data", _MetadataData),
    ]


# ----------------------------------------------------------------------
# Callback function types
# ----------------------------------------------------------------------

READ_CALLBACK = ctypes.CFUNCTYPE(
    ctypes.c_int, ctypes.c_void_p, ctypes.c_void_p, ctypes.POINTER(ctypes.c_size_t), ctypes.c_void_p
)
SEEK_CALLBACK = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_uint64, ctypes.c_void_p)
TELL_CALLBACK = ctypes.CFUNCTYPE(
    ctypes.c_int, ctypes.c_void_p, ctypes.POINTER(ctypes.c_uint64), ctypes.c_void_p
)
LENGTH_CALLBACK = ctypes.CFUNCTYPE(
    ctypes.c_int, ctypes.c_void_p, ctypes.POINTER(ctypes.c_uint64), ctypes.c_void_p
)
EOF_CALLBACK = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_void_p)
WRITE_CALLBACK = ctypes.CFUNCTYPE(
    ctypes.c_int,
    ctypes.c_void_p,
    ctypes.POINTER(FrameHeaderStruct),
    ctypes.POINTER(ctypes.POINTER(ctypes.c_int32)),
    ctypes.c_void_p,
)
METADATA_CALLBACK = ctypes.CFUNCTYPE(
    None, ctypes.c_void_p, ctypes.POINTER(StreamMetadataStruct), ctypes.c_void_p
)
ERROR_CALLBACK = ctypes.CFUNCTYPE(None, ctypes.c_void_p, ctypes.c_int, ctypes.c_void_p)


# ----------------------------------------------------------------------
# Library loading
# ----------------------------------------------------------------------

def _candidate_names() -> List[str]:
    """Well-known libFLAC file names for this platform."""
    system = platform.system()

    if system == 'Windows':
        return ['libFLAC.dll', 'FLAC.dll', 'libFLAC-8.dll']
    elif system == 'Darwin':
        return ['libFLAC.dylib', 'libFLAC.14.dylib', 'libFLAC.12.dylib', 'libFLAC.8.dylib']
    else:
        return ['libFLAC.so', 'libFLAC.so.14', 'libFLAC.so.12', 'libFLAC.so.8']


def _resolve_candidates(path: Optional[str]) -> List[str]:
    if path:
        return [path]

    env_path = os.environ.get(LIBFLAC_ENV_VAR)
    if env_path:
        return [env_path]

    candidates = []
    found = ctypes.util.find_library('FLAC')
    if found:
        candidates.append(found)
    candidates.extend(_candidate_names())
    return candidates


@functools.lru_cache(maxsize=None)
def load_libflac(path: Optional[str] = None) -> "LibFlac":
    """
    Load libFLAC once per path.

    Args:
        path: Explicit library path. Falls back to $FLACSTREAM_LIBFLAC,
              then ctypes.util.find_library, then platform defaults.

    Raises:
        LibraryNotFoundError: if no candidate could be loaded.
    """
    tried = []
    for candidate in _resolve_candidates(path):
        try:
            lib = LibFlac(ctypes.CDLL(candidate))
        except (OSError, AttributeError) as e:
            tried.append(f"{candidate} ({e})")
            continue
        logger.debug(f"[LibFlac] Loaded {candidate} (libFLAC {lib.version})")
        return lib

    raise LibraryNotFoundError(f"Could not load libFLAC; tried: {', '.join(tried)}")


class LibFlac:
    """Prototyped handle on a loaded libFLAC shared library."""

    def __init__(self, lib: ctypes.CDLL):
        self._lib = lib

        lib.FLAC__stream_decoder_new.restype = ctypes.c_void_p
        lib.FLAC__stream_decoder_new.argtypes = []

        lib.FLAC__stream_decoder_delete.restype = None
        lib.FLAC__stream_decoder_delete.argtypes = [ctypes.c_void_p]

        lib.FLAC__stream_decoder_init_stream.restype = ctypes.c_int
        lib.FLAC__stream_decoder_init_stream.argtypes = [
            ctypes.c_void_p,
            READ_CALLBACK,
            SEEK_CALLBACK,
            TELL_CALLBACK,
            LENGTH_CALLBACK,
            EOF_CALLBACK,
            WRITE_CALLBACK,
            METADATA_CALLBACK,
            ERROR_CALLBACK,
            ctypes.c_void_p,
        ]

        lib.FLAC__stream_decoder_set_md5_checking.restype = ctypes.c_int
        lib.FLAC__stream_decoder_set_md5_checking.argtypes = [ctypes.c_void_p, ctypes.c_int]

        lib.FLAC__stream_decoder_process_single.restype = ctypes.c_int
        lib.FLAC__stream_decoder_process_single.argtypes = [ctypes.c_void_p]

        lib.FLAC__stream_decoder_process_until_end_of_metadata.restype = ctypes.c_int
        lib.FLAC__stream_decoder_process_until_end_of_metadata.argtypes = [ctypes.c_void_p]

        lib.FLAC__stream_decoder_get_state.restype = ctypes.c_int
        lib.FLAC__stream_decoder_get_state.argtypes = [ctypes.c_void_p]

        lib.FLAC__stream_decoder_finish.restype = ctypes.c_int
        lib.FLAC__stream_decoder_finish.argtypes = [ctypes.c_void_p]

    @property
    def lib(self) -> ctypes.CDLL:
        return self._lib

    @property
    def version(self) -> str:
        try:
            raw = ctypes.c_char_p.in_dll(self._lib, "FLAC__VERSION_STRING").value
        except ValueError:
            return "unknown"
        return raw.decode('ascii', 'replace') if raw else "unknown"

    def new_decoder(self) -> "NativeStreamDecoder":
        """Allocate a FLAC__StreamDecoder."""
        ptr = self._lib.FLAC__stream_decoder_new()
        if not ptr:
            raise AllocationError("FLAC__stream_decoder_new() returned NULL")
        return NativeStreamDecoder(self._lib, ptr)


class NativeStreamDecoder:
    """One FLAC__StreamDecoder instance and the thunks installed on it."""

    def __init__(self, lib: ctypes.CDLL, ptr: int):
        self._lib = lib
        self._ptr: Optional[int] = ptr
        self._callbacks: Optional[CallbackTable] = None
        # Thunks must outlive every native call that may invoke them
        self._thunks: tuple = ()

    @property
    def is_deleted(self) -> bool:
        return self._ptr is None

    def init_stream(self, callbacks: CallbackTable) -> int:
        """Install the callbacks and initialize the decoder. Returns the init status."""
        self._callbacks = callbacks
        self._thunks = (
            READ_CALLBACK(self._read),
            SEEK_CALLBACK(self._seek),
            TELL_CALLBACK(self._tell),
            LENGTH_CALLBACK(self._length),
            EOF_CALLBACK(self._eof),
            WRITE_CALLBACK(self._write),
            METADATA_CALLBACK(self._metadata),
            ERROR_CALLBACK(self._error),
        )
        return self._lib.FLAC__stream_decoder_init_stream(self._ptr, *self._thunks, None)

    def set_md5_checking(self, enabled: bool) -> bool:
        return bool(self._lib.FLAC__stream_decoder_set_md5_checking(self._ptr, int(enabled)))

    def process_until_end_of_metadata(self) -> bool:
        return bool(self._lib.FLAC__stream_decoder_process_until_end_of_metadata(self._ptr))

    def process_single(self) -> bool:
        return bool(self._lib.FLAC__stream_decoder_process_single(self._ptr))

    def get_state(self) -> int:
        return self._lib.FLAC__stream_decoder_get_state(self._ptr)

    def finish(self) -> bool:
        """Finish decoding. False means the MD5 check failed (when enabled)."""
        return bool(self._lib.FLAC__stream_decoder_finish(self._ptr))

    def delete(self):
        """Free the native decoder. Safe to call more than once."""
        if self._ptr is None:
            return
        ptr, self._ptr = self._ptr, None
        self._lib.FLAC__stream_decoder_delete(ptr)
        self._thunks = ()
        self._callbacks = None

    # ------------------------------------------------------------------
    # Thunks (native arguments -> CallbackTable)
    # ------------------------------------------------------------------

    def _read(self, decoder, buffer, nbytes, client_data):
        capacity = nbytes[0]
        array = (ctypes.c_ubyte * capacity).from_address(buffer)
        status, count = self._callbacks.read(memoryview(array).cast("B"))
        nbytes[0] = count
        return int(status)

    def _seek(self, decoder, absolute_byte_offset, client_data):
        return int(self._callbacks.seek(absolute_byte_offset))

    def _tell(self, decoder, absolute_byte_offset, client_data):
        status, offset = self._callbacks.tell()
        if status == TellStatus.OK:
            absolute_byte_offset[0] = offset
        return int(status)

    def _length(self, decoder, stream_length, client_data):
        status, length = self._callbacks.length()
        if status == LengthStatus.OK:
            stream_length[0] = length
        return int(status)

    def _eof(self, decoder, client_data):
        return int(bool(self._callbacks.eof()))

    def _write(self, decoder, frame, buffer, client_data):
        raw = frame.contents
        header = FrameHeader(
            channels=raw.channels,
            blocksize=raw.blocksize,
            bits_per_sample=raw.bits_per_sample,
            sample_rate=raw.sample_rate,
        )
        # Views into libFLAC's own memory, valid only during this call
        planes = [
            np.ctypeslib.as_array(buffer[channel], shape=(raw.blocksize,))
            for channel in range(raw.channels)
        ]
        return int(self._callbacks.write(header, planes))

    def _metadata(self, decoder, metadata, client_data):
        block = metadata.contents
        info = None
        if block.type == MetadataType.STREAMINFO:
            raw = block.data.stream_info
            info = StreamInfo(
                sample_rate=raw.sample_rate,
                channels=raw.channels,
                bits_per_sample=raw.bits_per_sample,
                total_samples=raw.total_samples,
                checksum=bytes(raw.md5sum),
                min_blocksize=raw.min_blocksize,
                max_blocksize=raw.max_blocksize,
                min_framesize=raw.min_framesize,
                max_framesize=raw.max_framesize,
            )
        self._callbacks.metadata(block.type, info)

    def _error(self, decoder, status, client_data):
        self._callbacks.error(status)
