"""
libFLAC Diagnostic Tool
Run this to check that libFLAC loads, and optionally decode a .flac file.

Usage: python scripts/flac_probe.py [file.flac]
"""

import sys

try:
    import numpy as np
    from flacstream import FlacDecoder, FlacError, OutOfSyncError, load_libflac
    from flacstream.media import pcm
except ImportError as e:
    print(f"ERROR: flacstream not importable ({e}). Run: poetry install")
    sys.exit(1)

print("\n" + "="*60)
print("LIBFLAC PROBE")
print("="*60)

try:
    library = load_libflac()
    print(f"✓ libFLAC loaded (version {library.version})")
except FlacError as e:
    print(f"\n❌ {e}")
    print("\nPossible causes:")
    print("1. libFLAC not installed (Debian/Ubuntu: apt install libflac-dev)")
    print("2. Library in a non-standard location")
    print("\nSolution:")
    print("  Set FLACSTREAM_LIBFLAC to the full path of the libFLAC shared library")
    sys.exit(1)

if len(sys.argv) < 2:
    print("\nNo file given, nothing to decode.")
    sys.exit(0)

path = sys.argv[1]
print(f"\nDecoding: {path}\n")

with open(path, "rb") as f, FlacDecoder.from_file(f, library=library) as decoder:
    try:
        info = decoder.info()
    except OutOfSyncError:
        print("⚠ No STREAMINFO block found - not a FLAC stream?")
        print(f"  Decoder state: {decoder.state.name}")
        sys.exit(1)

    print(f"  Sample rate:   {info.sample_rate} Hz")
    print(f"  Channels:      {info.channels}")
    print(f"  Bit depth:     {info.bits_per_sample}")
    print(f"  Total samples: {info.total_samples} ({info.duration:.2f}s)")
    print(f"  MD5:           {info.checksum.hex()}")

    frames = 0
    peak = 0.0
    for samples in decoder.frames():
        frames += 1
        if samples.size:
            peak = max(peak, float(np.abs(pcm.normalize(samples, info.bits_per_sample)).max()))

    print(f"\n✓ Decoded {frames} frame(s), {decoder.bytes_read} bytes read")
    print(f"  Peak level:    {peak:.3f}")
    print(f"  Final state:   {decoder.state.name}")
    if decoder.last_error is not None:
        print(f"  ⚠ Last decode error: {getattr(decoder.last_error, 'name', decoder.last_error)}")

print("="*60)
