"""PCM conversion utilities for decoded FLAC frames."""
import numpy as np

from flacstream.core.protocol import PCM_BITS_PER_SAMPLE


def to_float_planes(samples: np.ndarray) -> np.ndarray:
    """
    Widen planar integer samples [channels][blocksize] to float64.

    No scaling: each value equals the decoded integer.
    """
    return np.asarray(samples).astype(np.float64)


def to_s16le(samples: np.ndarray, bits_per_sample: int = PCM_BITS_PER_SAMPLE) -> bytes:
    """
    Pack planar samples as interleaved signed 16-bit little-endian PCM.

    Output order is frame-major: [f0c0, f0c1, ..., f1c0, ...].
    Samples deeper than 16 bits are shifted down, shallower ones shifted up,
    so every bit depth lands on the 16-bit scale. 16-bit input is packed as-is
    (truncated to 16 bits).
    """
    samples = np.asarray(samples, dtype=np.int32)
    if samples.size == 0:
        return b""

    shift = bits_per_sample - PCM_BITS_PER_SAMPLE
    if shift > 0:
        samples = samples >> shift
    elif shift < 0:
        samples = samples << -shift

    interleaved = np.ascontiguousarray(samples.T)
    return interleaved.astype("<i2").tobytes()


def normalize(samples: np.ndarray, bits_per_sample: int) -> np.ndarray:
    """
    Scale integer samples to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.

    Raises:
        ValueError: bits_per_sample is not a positive bit depth.
    """
    if bits_per_sample < 1:
        raise ValueError(f"Invalid bits per sample: {bits_per_sample}")
    scale = float(1 << (bits_per_sample - 1))
    return (np.asarray(samples).astype(np.float32) / scale).astype(np.float32)
