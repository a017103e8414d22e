"""Manifest schema handling."""

import logging
from typing import Any

from ..core.types import (
    IMAGE_MANIFEST_TYPES,
    INDEX_MANIFEST_TYPES,
    LEGACY_MANIFEST_TYPES,
    OCI_INDEX,
    OCI_MANIFEST,
    LayerDescriptor,
)
from ..exceptions import ManifestError, UnsupportedManifestError
from ..utils.digest import validate_digest

logger = logging.getLogger(__name__)

KNOWN_MANIFEST_TYPES = IMAGE_MANIFEST_TYPES | INDEX_MANIFEST_TYPES | LEGACY_MANIFEST_TYPES


def resolve_media_type(document: dict[str, Any], content_type: str | None = None) -> str:
    """Work out which schema a manifest document declares.

    The document's own ``mediaType`` wins, then the response Content-Type
    when it names a manifest type. Documents declaring neither are
    classified by shape: a ``manifests`` array is an index, a schema 2
    document with ``layers`` is an OCI image manifest.

    Raises:
        UnsupportedManifestError: If the schema cannot be determined
    """
    declared = document.get("mediaType")
    if isinstance(declared, str) and declared:
        return declared

    if content_type in KNOWN_MANIFEST_TYPES:
        return content_type

    if "manifests" in document:
        return OCI_INDEX

    if document.get("schemaVersion") == 2 and "layers" in document:
        return OCI_MANIFEST

    raise UnsupportedManifestError(
        f"Cannot determine manifest schema (Content-Type {content_type!r})",
        media_type=content_type,
    )


def _parse_descriptor(entry: Any, position: int) -> LayerDescriptor:
    if not isinstance(entry, dict):
        raise ManifestError(f"Layer {position} is not an object")

    digest = entry.get("digest")
    if not validate_digest(digest):
        raise ManifestError(f"Layer {position} has an invalid digest: {digest!r}")

    size = entry.get("size")
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ManifestError(f"Layer {position} has an invalid size: {size!r}")

    media_type = entry.get("mediaType", "")
    return LayerDescriptor(
        digest=digest,
        size=size,
        media_type=media_type if isinstance(media_type, str) else "",
    )


def parse_manifest_layers(
    document: Any, content_type: str | None = None
) -> list[LayerDescriptor]:
    """Extract the ordered layer descriptors from a manifest.

    The config descriptor is discarded. Manifest lists, OCI indexes and
    schema 1 manifests are refused rather than guessed at.

    Args:
        document: Decoded manifest JSON
        content_type: Content-Type of the manifest response

    Returns:
        Layer descriptors in manifest order

    Raises:
        UnsupportedManifestError: If the schema is not a single-platform
            image manifest
        ManifestError: If the manifest is malformed
    """
    if not isinstance(document, dict):
        raise ManifestError("Manifest is not a JSON object")

    media_type = resolve_media_type(document, content_type)

    if media_type in INDEX_MANIFEST_TYPES:
        raise UnsupportedManifestError(
            f"Multi-platform manifest lists are not supported ({media_type})",
            media_type=media_type,
        )

    if media_type not in IMAGE_MANIFEST_TYPES:
        raise UnsupportedManifestError(
            f"Unsupported manifest type: {media_type}", media_type=media_type
        )

    if document.get("schemaVersion") != 2:
        raise UnsupportedManifestError(
            f"Unsupported manifest schemaVersion: {document.get('schemaVersion')!r}",
            media_type=media_type,
        )

    layers = document.get("layers")
    if not isinstance(layers, list):
        raise ManifestError("Manifest has no layers list")

    if not layers:
        raise ManifestError("Manifest lists no layers")

    descriptors = [_parse_descriptor(entry, i) for i, entry in enumerate(layers, 1)]
    logger.debug("Manifest %s lists %d layers", media_type, len(descriptors))
    return descriptors
