"""Custom exceptions for the registry rootfs downloader."""


class RegistryError(Exception):
    """Base exception for every registry or download failure."""

    pass


class RegistryConnectionError(RegistryError):
    """Raised when unable to connect to the registry."""

    pass


class ReferenceFormatError(RegistryError):
    """Raised when an image reference cannot be parsed."""

    pass


class AuthenticationError(RegistryError):
    """Raised when a pull token cannot be obtained."""

    pass


class ManifestError(RegistryError):
    """Raised when manifest retrieval or parsing fails."""

    pass


class UnsupportedManifestError(ManifestError):
    """Raised when the manifest schema is not a single-platform image manifest."""

    def __init__(self, message: str, media_type: str | None = None) -> None:
        super().__init__(message)
        self.media_type = media_type


class ResourceLimitError(RegistryError):
    """Raised when an image exceeds the configured resource ceilings."""

    def __init__(self, message: str, code: str, ordinal: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.ordinal = ordinal


class BlobDownloadError(RegistryError):
    """Raised when a layer blob cannot be downloaded."""

    pass


class DigestMismatchError(BlobDownloadError):
    """Raised when downloaded content does not match its descriptor."""

    pass


class CombineError(RegistryError):
    """Raised when downloaded layers cannot be combined into one archive."""

    pass


class PathSafetyError(RegistryError):
    """Raised when a path escapes the directory it must stay inside."""

    pass


class ValidationError(RegistryError):
    """Raised when user input fails validation."""

    pass
