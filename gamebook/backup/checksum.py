"""
Checksum helpers for snapshot integrity verification.
"""

import hashlib
from typing import Union


def generate_checksum(data: Union[str, bytes]) -> str:
    """
    Compute the SHA-256 hex digest of a serialized payload.

    Text is encoded as UTF-8 before hashing.

    Args:
        data: Serialized payload (text or raw bytes)

    Returns:
        Lowercase hex digest
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def verify_checksum(data: Union[str, bytes], expected: str) -> bool:
    """Return True if the digest of data matches the expected checksum."""
    return generate_checksum(data) == expected
