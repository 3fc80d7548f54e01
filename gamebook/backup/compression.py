"""
Compression codec for snapshot payloads.

Payloads are gzip compressed. Compression runs in a worker thread so the
event loop is never blocked by large project sets.
"""

import asyncio
import gzip
import zlib


class CompressionError(Exception):
    """Raised when a payload cannot be compressed or decompressed."""
    pass


def compress_text(data: str) -> bytes:
    """
    Gzip a text payload.

    Args:
        data: Serialized payload

    Returns:
        Gzip compressed bytes of the UTF-8 encoded text
    """
    return gzip.compress(data.encode('utf-8'))


def decompress_text(data: bytes) -> str:
    """
    Reverse compress_text().

    Args:
        data: Gzip compressed bytes

    Returns:
        Decoded text payload

    Raises:
        CompressionError: If data is not a valid gzip stream of UTF-8 text
    """
    try:
        return gzip.decompress(data).decode('utf-8')
    except (OSError, EOFError, zlib.error) as e:
        raise CompressionError(f"Invalid compressed payload: {e}")
    except UnicodeDecodeError as e:
        raise CompressionError(f"Decompressed payload is not UTF-8 text: {e}")


async def compress_data(data: str) -> bytes:
    """Compress a payload without blocking the event loop."""
    return await asyncio.to_thread(compress_text, data)


async def decompress_data(data: bytes) -> str:
    """Decompress a payload without blocking the event loop."""
    return await asyncio.to_thread(decompress_text, data)
