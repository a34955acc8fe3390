"""Block decompression for LZ4 and Zstandard payloads."""

from __future__ import annotations

import lz4.block
import zstandard

__all__ = ["lz4_decompress", "zstd_decompress"]

_LZ4_EXPANSION = 4


def lz4_decompress(src: bytes) -> bytes:
    """Decompress a raw LZ4 block.

    The output may be at most four times the input size. Raises ValueError
    on corrupt input or when the output would not fit.
    """
    if not src:
        return b""
    try:
        return lz4.block.decompress(bytes(src), uncompressed_size=len(src) * _LZ4_EXPANSION)
    except lz4.block.LZ4BlockError as exc:
        raise ValueError(f"lz4: {exc}") from exc


def zstd_decompress(src: bytes) -> bytes:
    """Decompress one or more concatenated Zstandard frames.

    Raises ValueError on corrupt or truncated input.
    """
    decompressor = zstandard.ZstdDecompressor()
    chunks = []
    data = bytes(src)
    try:
        while data:
            obj = decompressor.decompressobj()
            chunks.append(obj.decompress(data))
            if not obj.eof:
                raise ValueError("zstd: unexpected end of input")
            data = obj.unused_data
    except zstandard.ZstdError as exc:
        raise ValueError(f"zstd: {exc}") from exc
    return b"".join(chunks)