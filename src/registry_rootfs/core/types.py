"""Core data types for the registry rootfs downloader."""

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ..exceptions import ValidationError

DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+json"
DOCKER_MANIFEST_V1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"

IMAGE_MANIFEST_TYPES = frozenset({DOCKER_MANIFEST_V2, OCI_MANIFEST})
INDEX_MANIFEST_TYPES = frozenset({DOCKER_MANIFEST_LIST, OCI_INDEX})
LEGACY_MANIFEST_TYPES = frozenset({DOCKER_MANIFEST_V1, DOCKER_MANIFEST_V1_SIGNED})

DEFAULT_REGISTRY = "registry-1.docker.io"
DEFAULT_AUTH_URL = "https://auth.docker.io/token"
DEFAULT_SERVICE = "registry.docker.io"
DEFAULT_TAG = "latest"

# Registry token protocol: tokens without expires_in are valid for 60 seconds.
DEFAULT_TOKEN_LIFETIME = 60

GIB = 1024 * 1024 * 1024


@dataclass(frozen=True)
class ResourceLimits:
    """Ceilings applied to a manifest before any blob is transferred."""

    max_layers: int = 100
    max_layer_size: int = 5 * GIB
    max_total_size: int = 20 * GIB


DEFAULT_LIMITS = ResourceLimits()


def _default_security_log() -> Path:
    return Path.home() / ".registry-rootfs" / "security.log"


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from None
    if number <= 0:
        raise ValidationError(f"{name} must be positive, got {value!r}")
    return number


@dataclass
class RegistryConfig:
    """Registry and download configuration.

    Defaults point at Docker Hub. Every field can be overridden in code or,
    through :meth:`from_env`, by environment variables.
    """

    registry: str = DEFAULT_REGISTRY
    auth_url: str = DEFAULT_AUTH_URL
    service: str = DEFAULT_SERVICE
    scheme: str = "https"
    timeout: int = 300
    chunk_size: int = 64 * 1024
    username: str | None = None
    password: str | None = None
    tar_command: str | None = None
    verify_digests: bool = True
    limits: ResourceLimits = DEFAULT_LIMITS
    temp_root: str | None = None
    security_log_path: Path = field(default_factory=_default_security_log)
    user_agent: str = "registry-rootfs/0.1.0"

    def registry_url(self, registry: str) -> str:
        """Base URL for ``registry`` using the configured scheme."""
        return f"{self.scheme}://{registry}".rstrip("/")

    @classmethod
    def from_env(cls) -> "RegistryConfig":
        """Build a configuration from environment variables.

        Environment Variables:
            REGISTRY_HOST: Registry host. Default: registry-1.docker.io
            REGISTRY_AUTH_URL: Token endpoint. Default: https://auth.docker.io/token
            REGISTRY_SERVICE: Token service name. Default: registry.docker.io
            REGISTRY_SCHEME: URL scheme for the registry. Default: https
            REGISTRY_TIMEOUT: Connect and read timeout in seconds. Default: 300
            REGISTRY_USERNAME / REGISTRY_PASSWORD: Credentials for the token endpoint
            ROOTFS_TAR_COMMAND: External tar used to combine layers. Default: unset
            ROOTFS_TEMP_DIR: Parent of per-run working directories
            ROOTFS_SECURITY_LOG: Security audit log path
            ROOTFS_VERIFY_DIGESTS: Verify blob digests while streaming. Default: true

        Raises:
            ValidationError: If REGISTRY_TIMEOUT is not a positive integer
        """
        security_log = os.getenv("ROOTFS_SECURITY_LOG")
        return cls(
            registry=os.getenv("REGISTRY_HOST", DEFAULT_REGISTRY),
            auth_url=os.getenv("REGISTRY_AUTH_URL", DEFAULT_AUTH_URL),
            service=os.getenv("REGISTRY_SERVICE", DEFAULT_SERVICE),
            scheme=os.getenv("REGISTRY_SCHEME", "https"),
            timeout=_env_int("REGISTRY_TIMEOUT", 300),
            username=os.getenv("REGISTRY_USERNAME") or None,
            password=os.getenv("REGISTRY_PASSWORD") or None,
            tar_command=os.getenv("ROOTFS_TAR_COMMAND") or None,
            verify_digests=_env_flag("ROOTFS_VERIFY_DIGESTS", True),
            temp_root=os.getenv("ROOTFS_TEMP_DIR") or None,
            security_log_path=(
                Path(security_log) if security_log else _default_security_log()
            ),
        )


@dataclass(frozen=True)
class ImageReference:
    """A parsed image reference."""

    registry: str
    repository: str
    tag: str

    def __str__(self) -> str:
        return f"{self.registry}/{self.repository}:{self.tag}"


@dataclass(frozen=True)
class AuthToken:
    """Short-lived bearer token scoped to one repository."""

    value: str
    expires_in: int
    issued_at: datetime

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    def is_expired(self, now: datetime | None = None, leeway: int = 10) -> bool:
        """Return True when the token expires within ``leeway`` seconds."""
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at - timedelta(seconds=leeway)


@dataclass(frozen=True)
class LayerDescriptor:
    """Filesystem layer blob listed in a manifest."""

    digest: str
    size: int
    media_type: str = ""


@dataclass(frozen=True)
class DownloadedLayer:
    """Layer blob stored on local disk."""

    ordinal: int
    path: Path
    size: int
    digest: str = ""
