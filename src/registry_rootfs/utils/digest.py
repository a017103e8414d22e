"""Digest calculation and validation utilities."""

import hashlib
import re
from typing import Union

# Layer digests are always sha256 with 64 lower-case hex characters.
LAYER_DIGEST_PATTERN = re.compile(r"^sha256:[a-f0-9]{64}$")


def calculate_digest(data: Union[bytes, bytearray]) -> str:
    """Calculate the sha256 digest of data.

    Args:
        data: Data to hash

    Returns:
        Digest string in format "sha256:hex"

    Raises:
        ValueError: If data is not bytes-like
    """
    if not isinstance(data, (bytes, bytearray)):
        raise ValueError("Data must be bytes or bytearray")

    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def validate_digest(digest: str) -> bool:
    """Validate that ``digest`` is a ``sha256:<64 hex>`` layer digest."""
    if not isinstance(digest, str):
        return False

    return LAYER_DIGEST_PATTERN.fullmatch(digest) is not None


class DigestVerifier:
    """Incrementally hash a blob stream and compare it to its descriptor."""

    def __init__(self, expected_digest: str, expected_size: int) -> None:
        if not validate_digest(expected_digest):
            raise ValueError(f"Invalid digest format: {expected_digest}")

        self.expected_digest = expected_digest
        self.expected_size = expected_size
        self.size = 0
        self._hasher = hashlib.sha256()

    def update(self, chunk: bytes) -> None:
        self._hasher.update(chunk)
        self.size += len(chunk)

    @property
    def digest(self) -> str:
        return f"sha256:{self._hasher.hexdigest()}"

    @property
    def overflowed(self) -> bool:
        """True once more bytes than declared have been received."""
        return self.size > self.expected_size

    def size_matches(self) -> bool:
        return self.size == self.expected_size

    def digest_matches(self) -> bool:
        return self.digest == self.expected_digest
