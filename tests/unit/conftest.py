"""Scripted stand-in for the libFLAC stream decoder, plus shared fixtures."""

import io

import numpy as np
import pytest

from flacstream.core.errors import AllocationError
from flacstream.core.protocol import (
    ErrorStatus,
    FrameHeader,
    InitStatus,
    MetadataType,
    NativeDecoderState,
    ReadStatus,
    StreamInfo,
    WriteStatus,
)

# Bytes the fake decoder pulls through the read callback per script event
CHUNK = 4

CHECKSUM = bytes(range(16))


class Metadata:
    def __init__(self, block_type, stream_info=None):
        self.block_type = block_type
        self.stream_info = stream_info


class Frame:
    def __init__(self, planes, bits_per_sample=16, sample_rate=44100):
        self.planes = [np.asarray(p, dtype=np.int32) for p in planes]
        self.header = FrameHeader(
            channels=len(self.planes),
            blocksize=len(self.planes[0]),
            bits_per_sample=bits_per_sample,
            sample_rate=sample_rate,
        )


class DecodeError:
    def __init__(self, status):
        self.status = status


class BadHeader:
    """A frame header libFLAC rejects: one native step that ends without a frame."""


class FakeStreamDecoder:
    """Drives a CallbackTable the way libFLAC would, from a list of events."""

    def __init__(self, script, init_status=InitStatus.OK):
        self.script = list(script)
        self.init_status = init_status
        self.state = NativeDecoderState.UNINITIALIZED
        self.callbacks = None
        self.md5_checking = False
        self.finish_calls = 0
        self.delete_calls = 0
        self.read_requests = []
        self.delivered = []
        self.single_calls = 0

    @property
    def is_deleted(self):
        return self.delete_calls > 0

    def init_stream(self, callbacks):
        self.callbacks = callbacks
        if self.init_status == InitStatus.OK:
            self.state = NativeDecoderState.SEARCH_FOR_METADATA
        return int(self.init_status)

    def set_md5_checking(self, enabled):
        self.md5_checking = enabled
        return True

    def get_state(self):
        return int(self.state)

    def _pull(self):
        buffer = bytearray(CHUNK)
        self.read_requests.append(len(buffer))
        status, count = self.callbacks.read(memoryview(buffer))
        if status == ReadStatus.END_OF_STREAM:
            self.state = NativeDecoderState.END_OF_STREAM
            return False
        if status == ReadStatus.ABORT:
            self.state = NativeDecoderState.ABORTED
            return False
        self.delivered.append(bytes(buffer[:count]))
        return True

    def process_until_end_of_metadata(self):
        self.state = NativeDecoderState.READ_METADATA
        while self.script and isinstance(self.script[0], Metadata):
            if not self._pull():
                return False
            block = self.script.pop(0)
            self.callbacks.metadata(int(block.block_type), block.stream_info)
        self.state = NativeDecoderState.SEARCH_FOR_FRAME_SYNC
        return True

    def process_single(self):
        self.single_calls += 1
        if self.state in (NativeDecoderState.END_OF_STREAM, NativeDecoderState.ABORTED):
            return self.state == NativeDecoderState.END_OF_STREAM
        while True:
            if not self._pull():
                return False
            if not self.script:
                continue
            event = self.script.pop(0)
            if isinstance(event, DecodeError):
                self.callbacks.error(int(event.status))
                continue
            if isinstance(event, BadHeader):
                self.callbacks.error(int(ErrorStatus.BAD_HEADER))
                self.state = NativeDecoderState.SEARCH_FOR_FRAME_SYNC
                return True
            if isinstance(event, Frame):
                self.state = NativeDecoderState.READ_FRAME
                status = self.callbacks.write(event.header, event.planes)
                if status == WriteStatus.ABORT:
                    self.state = NativeDecoderState.ABORTED
                    return False
                self.state = NativeDecoderState.SEARCH_FOR_FRAME_SYNC
                return True

    def finish(self):
        self.finish_calls += 1
        return True

    def delete(self):
        self.delete_calls += 1


class FakeLibrary:
    """Hands out FakeStreamDecoders in place of LibFlac."""

    def __init__(self, script=(), init_status=InitStatus.OK, fail_alloc=False):
        self.script = script
        self.init_status = init_status
        self.fail_alloc = fail_alloc
        self.decoders = []

    def new_decoder(self):
        if self.fail_alloc:
            raise AllocationError("FLAC__stream_decoder_new() returned NULL")
        decoder = FakeStreamDecoder(self.script, self.init_status)
        self.decoders.append(decoder)
        return decoder


def stream_info(**overrides):
    fields = dict(
        sample_rate=44100,
        channels=2,
        bits_per_sample=16,
        total_samples=4,
        checksum=CHECKSUM,
        min_blocksize=2,
        max_blocksize=2,
    )
    fields.update(overrides)
    return StreamInfo(**fields)


def byte_reader(data):
    """read_fn over an in-memory byte string."""
    source = io.BytesIO(data)

    def read_fn(max_bytes):
        chunk = source.read(max_bytes)
        return chunk, len(chunk)

    return read_fn


def stream_bytes(script):
    """Enough input bytes for every event in a script."""
    return bytes(range(256))[: CHUNK * len(script)]


@pytest.fixture
def minimal_script():
    """44100 Hz, stereo, 16-bit, 4 samples, two frames of block size 2."""
    return [
        Metadata(MetadataType.STREAMINFO, stream_info()),
        Frame([[100, -200], [300, -400]]),
        Frame([[32767, -32768], [0, 1]]),
    ]


@pytest.fixture
def make_decoder():
    """Build a FlacDecoder over a FakeLibrary; closes everything afterwards."""
    from flacstream.media.flac_decoder import FlacDecoder

    created = []

    def factory(script, read_fn=None, **kwargs):
        library = kwargs.pop("library", None) or FakeLibrary(script)
        if read_fn is None:
            read_fn = byte_reader(stream_bytes(script))
        decoder = FlacDecoder(read_fn, library=library, **kwargs)
        created.append(decoder)
        return decoder

    yield factory

    for decoder in created:
        if not decoder.closed:
            decoder.close()
