"""
Unit tests for the payload codecs (gamebook/backup/compression.py, checksum.py).
"""

import gzip
import hashlib

import pytest

from gamebook.backup.checksum import generate_checksum, verify_checksum
from gamebook.backup.compression import (
    compress_text,
    decompress_text,
    compress_data,
    decompress_data,
    CompressionError
)


class TestChecksum:
    """Test SHA-256 checksum helpers."""

    def test_checksum_matches_sha256_hex(self):
        """Test checksum is the SHA-256 hex digest of the UTF-8 text."""
        assert generate_checksum('[{"id":1}]') == hashlib.sha256(b'[{"id":1}]').hexdigest()

    def test_checksum_text_and_bytes_agree(self):
        """Test text is hashed as its UTF-8 encoding."""
        text = '[{"name":"Drachenhöhle"}]'
        assert generate_checksum(text) == generate_checksum(text.encode('utf-8'))

    def test_checksum_is_deterministic(self):
        assert generate_checksum('payload') == generate_checksum('payload')

    def test_checksum_detects_single_character_change(self):
        assert generate_checksum('[{"id":1}]') != generate_checksum('[{"id":2}]')

    def test_verify_checksum(self):
        digest = generate_checksum('payload')

        assert verify_checksum('payload', digest) is True
        assert verify_checksum('payl0ad', digest) is False


class TestCompression:
    """Test gzip compression of text payloads."""

    @pytest.mark.parametrize("text", [
        "",
        "[]",
        '[{"id":1,"name":"Test Project 1"}]',
        "ünïcödé ✓ 竜",
    ])
    def test_round_trip(self, text):
        """Test decompress(compress(x)) == x."""
        assert decompress_text(compress_text(text)) == text

    def test_output_is_gzip(self):
        """Test compressed output is a standard gzip stream."""
        compressed = compress_text('hello')

        assert compressed[:2] == b'\x1f\x8b'
        assert gzip.decompress(compressed) == b'hello'

    def test_repetitive_payload_shrinks(self):
        text = '{"content":"The dragon sleeps."}' * 200

        assert len(compress_text(text)) < len(text.encode('utf-8'))

    def test_decompress_invalid_data(self):
        """Test non-gzip data raises CompressionError."""
        with pytest.raises(CompressionError, match="Invalid compressed payload"):
            decompress_text(b'not gzip at all')

    def test_decompress_truncated_data(self):
        """Test a truncated stream raises CompressionError."""
        compressed = compress_text('x' * 1000)

        with pytest.raises(CompressionError):
            decompress_text(compressed[:len(compressed) // 2])

    def test_decompress_non_utf8_payload(self):
        with pytest.raises(CompressionError, match="not UTF-8"):
            decompress_text(gzip.compress(b'\xff\xfe\xfa'))

    @pytest.mark.asyncio
    async def test_async_round_trip(self):
        """Test the non-blocking wrappers."""
        compressed = await compress_data('[{"id":1}]')

        assert isinstance(compressed, bytes)
        assert await decompress_data(compressed) == '[{"id":1}]'
