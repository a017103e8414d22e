"""Input validation utilities for image names, distribution names and paths."""

import os
import re
from pathlib import Path

from ..exceptions import PathSafetyError, ValidationError
from .security import SecurityLogger

MAX_IMAGE_LENGTH = 256
MAX_DISTRO_NAME_LENGTH = 255

IMAGE_NAME_PATTERN = re.compile(
    r"^[a-z0-9]+([._-][a-z0-9]+)*(/[a-z0-9]+([._-][a-z0-9]+)*)*$"
)
TAG_PATTERN = re.compile(r"^[a-zA-Z0-9_][a-zA-Z0-9._-]{0,127}$")

INVALID_DISTRO_NAME_CHARS = frozenset(' /\\:*?"<>|\0')
RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)


def is_valid_repository_name(name: str) -> bool:
    """Check if name is a lower-case, path-like repository name."""
    return IMAGE_NAME_PATTERN.fullmatch(name) is not None


def is_valid_tag(tag: str) -> bool:
    """Check if tag uses only allowed tag characters."""
    return TAG_PATTERN.fullmatch(tag) is not None


def has_url_scheme(value: str) -> bool:
    return "://" in value


def has_invalid_distro_chars(name: str) -> bool:
    return any(c in INVALID_DISTRO_NAME_CHARS or ord(c) < 32 for c in name)


def is_reserved_name(name: str) -> bool:
    return name.upper() in RESERVED_NAMES


def _reject(audit: SecurityLogger | None, input_type: str, value: str, reason: str):
    if audit is not None:
        audit.log_validation_failure(input_type, value, reason)
    raise ValidationError(f"{input_type} {value!r}: {reason}")


def validate_image_name(image: str, audit: SecurityLogger | None = None) -> str:
    """Validate a user supplied image reference before it reaches the registry.

    Format: ``[namespace/]name[:tag]``.

    Args:
        image: Image reference as typed by the user
        audit: Security logger recording the rejection

    Returns:
        The image reference unchanged

    Raises:
        ValidationError: If the reference is empty, too long, a URL, or
            contains invalid name or tag characters
    """
    if not image or not image.strip():
        _reject(audit, "Image", image, "empty image name")

    if has_url_scheme(image):
        _reject(audit, "Image", image, "full URLs are not allowed")

    if len(image) > MAX_IMAGE_LENGTH:
        _reject(audit, "Image", image, f"too long (max {MAX_IMAGE_LENGTH} characters)")

    parts = image.split(":")
    if len(parts) > 2:
        _reject(audit, "Image", image, "multiple colons")

    if not is_valid_repository_name(parts[0]):
        _reject(audit, "Image", image, "invalid name format")

    if len(parts) == 2 and not is_valid_tag(parts[1]):
        _reject(audit, "Image", image, "invalid tag format")

    return image


def validate_distro_name(name: str, audit: SecurityLogger | None = None) -> str:
    """Validate the name an imported distribution will be registered under.

    Raises:
        ValidationError: If the name is empty, too long, contains path or
            shell characters, or is a reserved device name
    """
    if not name or not name.strip():
        _reject(audit, "DistroName", name, "empty name")

    if len(name) > MAX_DISTRO_NAME_LENGTH:
        _reject(
            audit, "DistroName", name, f"too long (max {MAX_DISTRO_NAME_LENGTH})"
        )

    if has_invalid_distro_chars(name):
        _reject(audit, "DistroName", name, "contains invalid characters")

    if is_reserved_name(name):
        _reject(audit, "DistroName", name, "reserved system name")

    return name


def ensure_within_base(
    path: Path | str, base: Path | str, audit: SecurityLogger | None = None
) -> Path:
    """Resolve ``path`` and make sure it lies strictly inside ``base``.

    Returns:
        The resolved path

    Raises:
        PathSafetyError: If the resolved path is outside ``base``
    """
    resolved = Path(os.path.abspath(path))
    resolved_base = Path(os.path.abspath(base))

    if resolved_base not in resolved.parents:
        if audit is not None:
            audit.log_path_traversal(str(path), str(base))
        raise PathSafetyError(f"Path {path} is outside {base}")

    return resolved

