"""Utility functions for the registry rootfs downloader."""

from .digest import DigestVerifier, calculate_digest, validate_digest
from .security import SecurityLogger
from .validator import ensure_within_base, validate_distro_name, validate_image_name

__all__ = [
    "DigestVerifier",
    "SecurityLogger",
    "calculate_digest",
    "ensure_within_base",
    "validate_digest",
    "validate_distro_name",
    "validate_image_name",
]
