"""Image reference parsing."""

from ..exceptions import ReferenceFormatError
from ..utils.validator import is_valid_repository_name, is_valid_tag
from .types import DEFAULT_REGISTRY, DEFAULT_TAG, ImageReference


def parse_image_reference(
    image: str, default_registry: str = DEFAULT_REGISTRY
) -> ImageReference:
    """Split an image string into registry, repository and tag.

    Accepted forms:
        - ``ns/name:tag`` -> repository ``ns/name``, tag ``tag``
        - ``ns/name`` -> repository ``ns/name``, tag ``latest``
        - ``name:tag`` -> repository ``library/name``, tag ``tag``

    A bare ``name`` without a tag is rejected instead of defaulting to
    ``latest``. The registry is never read from the string.

    Args:
        image: Image reference as supplied by the user
        default_registry: Registry host the reference resolves against

    Returns:
        ImageReference

    Raises:
        ReferenceFormatError: If the string has no usable delimiters or
            contains an invalid repository or tag
    """
    if not image or not image.strip():
        raise ReferenceFormatError("Image reference cannot be empty")

    image = image.strip()

    if "/" in image:
        namespace, remainder = image.split("/", 1)
        if not namespace or not remainder:
            raise ReferenceFormatError(f"Invalid image reference: {image!r}")

        if ":" in remainder:
            name, tag = remainder.split(":", 1)
            repository = f"{namespace}/{name}"
        else:
            repository = image
            tag = DEFAULT_TAG
    else:
        if ":" not in image:
            raise ReferenceFormatError(
                f"Image reference {image!r} has no tag; use name:tag or namespace/name"
            )
        name, tag = image.split(":", 1)
        if not name:
            raise ReferenceFormatError(f"Invalid image reference: {image!r}")
        repository = f"library/{name}"

    if not tag or not is_valid_tag(tag):
        raise ReferenceFormatError(f"Invalid tag in image reference: {image!r}")

    if not is_valid_repository_name(repository):
        raise ReferenceFormatError(f"Invalid repository in image reference: {image!r}")

    return ImageReference(registry=default_registry, repository=repository, tag=tag)
