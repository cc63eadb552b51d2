"""Media module - pull-style FLAC decoding and PCM conversion."""

from .flac_decoder import FlacDecoder

__all__ = ['FlacDecoder']
