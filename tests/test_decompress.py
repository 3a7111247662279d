"""Tests for metadata decompression."""

import bz2
import gzip

import pytest

from cydia_mirror.decompress import BZIP2, GZIP, decompress, format_for
from cydia_mirror.errors import DecompressionError

PAYLOAD = b"Package: a\nFilename: debs/a.deb\n\n" * 500


class TestDecompress:
    def test_gzip(self):
        assert decompress(gzip.compress(PAYLOAD), GZIP) == PAYLOAD

    def test_bzip2(self):
        assert decompress(bz2.compress(PAYLOAD), BZIP2) == PAYLOAD

    def test_high_ratio_payload_is_not_truncated(self):
        # compresses far better than 10:1
        payload = b"A" * (5 * 1024 * 1024)
        compressed = gzip.compress(payload)
        assert len(payload) > 100 * len(compressed)
        assert decompress(compressed, GZIP) == payload

    def test_invalid_gzip(self):
        with pytest.raises(DecompressionError):
            decompress(b"this is not gzip", GZIP)

    def test_invalid_bzip2(self):
        with pytest.raises(DecompressionError):
            decompress(b"this is not bzip2", BZIP2)

    def test_wrong_format_declared(self):
        with pytest.raises(DecompressionError):
            decompress(gzip.compress(PAYLOAD), BZIP2)

    def test_truncated_stream(self):
        compressed = gzip.compress(PAYLOAD)
        with pytest.raises(DecompressionError):
            decompress(compressed[: len(compressed) // 2], GZIP)

    def test_empty_input(self):
        with pytest.raises(DecompressionError):
            decompress(b"", GZIP)

    def test_archive_without_data(self):
        with pytest.raises(DecompressionError):
            decompress(gzip.compress(b""), GZIP)
        with pytest.raises(DecompressionError):
            decompress(bz2.compress(b""), BZIP2)

    def test_max_size(self):
        with pytest.raises(DecompressionError):
            decompress(gzip.compress(PAYLOAD), GZIP, max_size=100)
        assert decompress(gzip.compress(PAYLOAD), GZIP, max_size=len(PAYLOAD)) == PAYLOAD

    def test_unknown_format(self):
        with pytest.raises(DecompressionError):
            decompress(PAYLOAD, "xz")


def test_format_for():
    assert format_for("Packages.gz") == GZIP
    assert format_for("Packages.bz2") == BZIP2
    assert format_for("Packages") is None
