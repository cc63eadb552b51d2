"""
Pull-style FLAC decoder handle on top of libFLAC's callback-driven stream decoder.

libFLAC pushes data at its caller: it asks for bytes through a read callback
and hands over decoded audio through a write callback. FlacDecoder turns that
around into a handle that is polled one frame at a time:

    with FlacDecoder.from_file(open("song.flac", "rb")) as decoder:
        info = decoder.info()
        for samples in decoder.frames():
            ...

Each read_frame()/read_pcm() call drives exactly one native decode step.
Decode failures do not raise; they show up in ``state``.
"""

import logging
import threading
import weakref
from contextlib import contextmanager
from typing import BinaryIO, Callable, Iterator, Optional, Tuple

import numpy as np

from flacstream.core.callbacks import CallbackTable
from flacstream.core.errors import (
    AllocationError,
    DecoderBusyError,
    DecoderClosedError,
    InitializationError,
)
from flacstream.core.frame_cache import FrameCache
from flacstream.core.libflac import load_libflac
from flacstream.core.protocol import (
    PCM_BITS_PER_SAMPLE,
    TERMINAL_STATES,
    DecoderState,
    ErrorStatus,
    FrameHeader,
    InitStatus,
    StreamInfo,
    translate_state,
)
from flacstream.core.read_bridge import ReadBridge, ReadFunction
from flacstream.media import pcm

logger = logging.getLogger(__name__)


def _release(native, cache: FrameCache, bridge: ReadBridge, md5_checking: bool):
    """Tear down one decoder. Runs at most once per handle (weakref.finalize)."""
    try:
        if not native.finish() and md5_checking:
            logger.warning("[FlacDecoder] MD5 checksum mismatch in decoded audio")
    finally:
        native.delete()
        cache.release()
        bridge.release()


def _forward(ref: weakref.ref, attribute: str) -> Callable:
    """
    Call a function stored on the decoder without holding the decoder.

    The native decoder and its callback table outlive the handle inside the
    finalizer, so caller functions are reached through a weak reference.
    """
    def call(*args):
        decoder = ref()
        if decoder is None:
            raise DecoderClosedError("Decoder has been garbage collected")
        return getattr(decoder, attribute)(*args)
    return call


class FlacDecoder:
    """
    One native FLAC stream decoder, polled frame by frame.

    Features:
    - Leading metadata is processed on construction
    - One native decode step per read_frame()/read_pcm() call
    - Frames are deep-copied out of libFLAC memory
    - Released exactly once: close(), ``with`` exit, or garbage collection
    """

    def __init__(
        self,
        read_fn: ReadFunction,
        library=None,
        md5_checking: bool = False,
        error_callback: Optional[Callable[[ErrorStatus], None]] = None,
    ):
        """
        Create the decoder and process all leading metadata.

        Args:
            read_fn: ``read_fn(max_bytes)`` returning ``(data, length)`` or bytes.
                     A zero-length answer means end of stream.
            library: Loaded libFLAC binding (default: load_libflac()).
            md5_checking: Ask libFLAC to verify the STREAMINFO MD5 on close.
            error_callback: Receives native decode error statuses.

        Raises:
            AllocationError: the native decoder could not be constructed.
            InitializationError: libFLAC rejected the stream setup.
        """
        library = library or load_libflac()

        self._lock = threading.RLock()
        self._cache = FrameCache()
        # Caller functions are owned by the handle alone, never by the finalizer
        self._read_fn = read_fn
        self._error_callback = error_callback
        ref = weakref.ref(self)
        self._bridge = ReadBridge(_forward(ref, "_read_fn"))
        self._callbacks = CallbackTable(
            self._cache,
            self._bridge,
            _forward(ref, "_error_callback") if error_callback else None,
        )
        self._native = library.new_decoder()
        self._finalizer = weakref.finalize(
            self, _release, self._native, self._cache, self._bridge, md5_checking
        )

        # Stats
        self._frames_decoded = 0

        try:
            if md5_checking:
                self._native.set_md5_checking(True)

            status = self._native.init_stream(self._callbacks)
            if status == InitStatus.MEMORY_ALLOCATION_ERROR:
                raise AllocationError("Decoder initialization could not allocate memory")
            if status != InitStatus.OK:
                raise InitializationError(status)

            with self._native_region():
                self._native.process_until_end_of_metadata()
        except BaseException:
            self._finalizer()
            raise

        logger.debug(f"[FlacDecoder] Metadata processed, state: {self.state.name}")

    @classmethod
    def from_file(cls, fileobj: BinaryIO, **kwargs) -> "FlacDecoder":
        """Create a decoder reading from a binary file-like object."""
        def read_fn(max_bytes: int) -> Tuple[bytes, int]:
            data = fileobj.read(max_bytes)
            return data, len(data)

        return cls(read_fn, **kwargs)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> DecoderState:
        """Current native decoder state (queried live, never cached)."""
        with self._lock:
            self._check_open()
            return translate_state(self._native.get_state())

    def info(self) -> StreamInfo:
        """
        Return the stream info.

        Raises:
            OutOfSyncError: no STREAMINFO block has been seen.
        """
        with self._lock:
            self._check_open()
            return self._cache.stream_info

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    @property
    def frames_decoded(self) -> int:
        return self._frames_decoded

    @property
    def bytes_read(self) -> int:
        return self._bridge.bytes_read

    @property
    def last_error(self) -> Optional[ErrorStatus]:
        """Most recent error reported by the native decoder, or None."""
        return self._callbacks.last_error

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def read_frame(self) -> np.ndarray:
        """
        Decode the next frame as float64 samples shaped [channels][blocksize].

        Values are the decoded integers, unscaled. Returns a [channels][0]
        array when the step produced no frame; check ``state`` to see why.
        """
        _, samples = self._decode_step()
        return pcm.to_float_planes(samples)

    def read_pcm(self) -> bytes:
        """
        Decode the next frame as interleaved signed 16-bit little-endian PCM.

        Streams deeper or shallower than 16 bits are requantized to 16 bits.
        Returns b"" when the step produced no frame.
        """
        header, samples = self._decode_step()
        return pcm.to_s16le(samples, header.bits_per_sample)

    def frames(self) -> Iterator[np.ndarray]:
        """Yield read_frame() results until the stream ends or fails."""
        while self.state not in TERMINAL_STATES:
            samples = self.read_frame()
            if samples.shape[1]:
                yield samples

    def _decode_step(self) -> Tuple[FrameHeader, np.ndarray]:
        with self._native_region():
            self._cache.begin_step()
            # A bad header or lost sync ends a native step without a frame
            while self._native.process_single():
                if self._cache.frame is not None or self._callbacks.has_pending:
                    break
                if translate_state(self._native.get_state()) in TERMINAL_STATES:
                    break
            frame = self._cache.frame

        if frame is None:
            return self._empty_frame()

        self._frames_decoded += 1
        if self._frames_decoded == 1:
            header = frame[0]
            logger.debug(
                f"[FlacDecoder] First frame: {header.channels}ch x {header.blocksize} samples"
            )
        return frame

    def _empty_frame(self) -> Tuple[FrameHeader, np.ndarray]:
        channels = self._cache.stream_info.channels if self._cache.has_stream_info else 0
        header = FrameHeader(channels=channels, blocksize=0, bits_per_sample=PCM_BITS_PER_SAMPLE)
        return header, np.zeros((channels, 0), dtype=np.int32)

    @contextmanager
    def _native_region(self):
        """
        Scope of one blocking native call.

        Serializes access to the handle, refuses re-entry from a callback,
        and re-raises any exception parked
        by a callback once control is back from native code.
        """
        with self._lock:
            self._check_open()
            if self._callbacks.in_callback:
                raise DecoderBusyError("Cannot decode from inside the decoder's own callback")
            self._callbacks.clear_pending()
            yield
            self._callbacks.raise_pending()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self):
        """Release the native decoder and all cached buffers. Safe to call twice."""
        with self._lock:
            if self._callbacks.in_callback:
                raise DecoderBusyError("Cannot close a decoder from inside its own callback")
            if not self._finalizer.alive:
                return
            self._finalizer()
        logger.debug(f"[FlacDecoder] Closed ({self._frames_decoded} frames decoded)")

    def _check_open(self):
        if not self._finalizer.alive:
            raise DecoderClosedError("Decoder has been closed")

    def __enter__(self) -> "FlacDecoder":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
