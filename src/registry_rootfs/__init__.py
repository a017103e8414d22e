"""Registry rootfs - pull a container image into a single root filesystem archive."""

__version__ = "0.1.0"

from .core.reference import parse_image_reference
from .core.registry_client import RegistryClient
from .core.types import (
    DEFAULT_LIMITS,
    AuthToken,
    DownloadedLayer,
    ImageReference,
    LayerDescriptor,
    RegistryConfig,
    ResourceLimits,
)
from .exceptions import (
    AuthenticationError,
    BlobDownloadError,
    CombineError,
    DigestMismatchError,
    ManifestError,
    PathSafetyError,
    ReferenceFormatError,
    RegistryConnectionError,
    RegistryError,
    ResourceLimitError,
    UnsupportedManifestError,
    ValidationError,
)
from .operations.limits import check_layer_limits, enforce_layer_limits
from .puller import download_image, pull_rootfs, working_directory
from .tar.combiner import combine_layers

__all__ = [
    "RegistryClient",
    "RegistryConfig",
    "ImageReference",
    "AuthToken",
    "LayerDescriptor",
    "DownloadedLayer",
    "ResourceLimits",
    "DEFAULT_LIMITS",
    "parse_image_reference",
    "check_layer_limits",
    "enforce_layer_limits",
    "download_image",
    "combine_layers",
    "pull_rootfs",
    "working_directory",
    "RegistryError",
    "RegistryConnectionError",
    "ReferenceFormatError",
    "AuthenticationError",
    "ManifestError",
    "UnsupportedManifestError",
    "ResourceLimitError",
    "BlobDownloadError",
    "DigestMismatchError",
    "CombineError",
    "PathSafetyError",
    "ValidationError",
]
