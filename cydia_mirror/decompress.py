"""Decompression of Packages.gz / Packages.bz2 payloads."""

import bz2
import zlib

from .errors import DecompressionError

GZIP = "gzip"
BZIP2 = "bzip2"

# Input is fed to the decompressor in slices of this size so the output
# buffer grows with what was actually produced.
CHUNK_SIZE = 64 * 1024


def format_for(filename):
    """Return the compression format implied by a metadata file name."""
    if filename.endswith(".gz"):
        return GZIP
    if filename.endswith(".bz2"):
        return BZIP2
    return None


def _decompressor(fmt):
    if fmt == GZIP:
        # 16 + MAX_WBITS: expect a gzip header and trailer
        return zlib.decompressobj(16 + zlib.MAX_WBITS)
    if fmt == BZIP2:
        return bz2.BZ2Decompressor()
    raise DecompressionError(f"Unsupported compression format: {fmt!r}")


def decompress(data, fmt, max_size=None):
    """
    Decompress a single gzip member or bzip2 stream.

    Args:
        data: Compressed bytes
        fmt: "gzip" or "bzip2"
        max_size: Optional upper bound on the decompressed size

    Returns:
        bytes: The decompressed payload

    Raises:
        DecompressionError: if the stream is invalid, truncated or empty,
            or larger than max_size
    """
    decompressor = _decompressor(fmt)
    output = bytearray()
    view = memoryview(data)

    try:
        for offset in range(0, len(view), CHUNK_SIZE):
            if decompressor.eof:
                break
            output += decompressor.decompress(view[offset:offset + CHUNK_SIZE])
            if max_size and len(output) > max_size:
                raise DecompressionError(
                    f"Decompressed {fmt} data exceeds the limit of {max_size} bytes"
                )
    except (zlib.error, OSError, EOFError) as e:
        raise DecompressionError(f"Invalid {fmt} data: {e}") from e

    if not decompressor.eof:
        raise DecompressionError(f"Truncated or empty {fmt} stream")
    if not output:
        raise DecompressionError(f"{fmt} stream contains no data")
    return bytes(output)
