"""Async functional pull operations."""

import asyncio
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .core.reference import parse_image_reference
from .core.registry_client import RegistryClient
from .core.types import DownloadedLayer, RegistryConfig
from .exceptions import CombineError
from .operations.blobs import download_layers
from .operations.limits import enforce_layer_limits
from .tar.combiner import INSTALL_ARCHIVE, PARTIAL_SUFFIX, combine_layers
from .utils.security import SecurityLogger
from .utils.validator import ensure_within_base

logger = logging.getLogger(__name__)

WORK_DIR_PREFIX = "registry-rootfs-"


@contextmanager
def working_directory(temp_root: str | None = None) -> Iterator[Path]:
    """Create a uniquely named working directory and remove it afterwards.

    Each invocation gets its own directory, so concurrent or retried pulls
    never share or delete each other's files.
    """
    if temp_root:
        Path(temp_root).mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=WORK_DIR_PREFIX, dir=temp_root))
    logger.debug("Working directory %s", path)
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("Cannot remove working directory %s: %s", path, e)


def clear_work_dir(work_dir: Path) -> None:
    """Remove layer and archive files left in ``work_dir`` by an earlier run."""
    for pattern in ("layer*.tar.bz", INSTALL_ARCHIVE, INSTALL_ARCHIVE + PARTIAL_SUFFIX):
        for stale in Path(work_dir).glob(pattern):
            if stale.is_file():
                logger.debug("Removing stale %s", stale)
                stale.unlink()


async def download_image(
    image: str,
    work_dir: Path | str,
    config: RegistryConfig | None = None,
    audit: SecurityLogger | None = None,
) -> list[DownloadedLayer]:
    """Download the manifest and every layer of an image.

    Args:
        image: Image reference (``ns/name:tag``, ``ns/name`` or ``name:tag``)
        work_dir: Directory receiving ``layer<N>.tar.bz`` files
        config: Registry configuration, Docker Hub defaults when omitted
        audit: Security logger, one at ``config.security_log_path`` when omitted

    Returns:
        Downloaded layers in manifest order

    Raises:
        RegistryError: On any failure; nothing is retried

    Examples:
        layers = await download_image("library/alpine:3.18", "/tmp/alpine")
        print([layer.path.name for layer in layers])
    """
    config = config or RegistryConfig()
    audit = audit or SecurityLogger(config.security_log_path)

    work_dir = Path(work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)
    clear_work_dir(work_dir)

    reference = parse_image_reference(image, config.registry)
    logger.info("Pulling %s", reference)

    async with RegistryClient(config) as client:
        layers = await client.get_layers(reference)
        enforce_layer_limits(layers, config.limits, audit, subject=str(reference))
        return await download_layers(client, reference, layers, work_dir)


def _publish(archive: Path, target: Path) -> None:
    partial = target.with_name(target.name + PARTIAL_SUFFIX)
    try:
        shutil.move(str(archive), str(partial))
        os.replace(partial, target)
    except OSError:
        partial.unlink(missing_ok=True)
        raise


async def pull_rootfs(
    image: str,
    destination: Path | str,
    config: RegistryConfig | None = None,
    audit: SecurityLogger | None = None,
    archive_name: str = INSTALL_ARCHIVE,
) -> Path:
    """Pull an image and write its flattened root filesystem archive.

    Layers are downloaded into a fresh working directory that is removed when
    the pull finishes, successfully or not. The archive only appears at
    ``destination/archive_name`` once it is complete.

    Args:
        image: Image reference
        destination: Directory receiving the archive
        config: Registry configuration
        audit: Security logger
        archive_name: File name of the archive inside ``destination``

    Returns:
        Path of the published archive

    Raises:
        RegistryError: On any failure
        PathSafetyError: If ``archive_name`` escapes ``destination``

    Examples:
        archive = await pull_rootfs("library/alpine:3.18", "./out")
    """
    config = config or RegistryConfig()
    audit = audit or SecurityLogger(config.security_log_path)

    destination = Path(destination)
    target = ensure_within_base(destination / archive_name, destination, audit)
    destination.mkdir(parents=True, exist_ok=True)

    with working_directory(config.temp_root) as work_dir:
        layers = await download_image(image, work_dir, config, audit)
        archive = await combine_layers(
            layers,
            work_dir,
            tar_command=config.tar_command,
            audit=audit,
            chunk_size=config.chunk_size,
        )

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _publish, archive, target)
        except OSError as e:
            raise CombineError(f"Cannot write archive to {target}: {e}") from e

    logger.info("Root filesystem for %s written to %s", image, target)
    return target
