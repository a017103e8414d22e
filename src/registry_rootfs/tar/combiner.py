"""Combination of downloaded layers into one root filesystem archive."""

import asyncio
import logging
import os
import posixpath
import tarfile
import threading
from pathlib import Path
from typing import Sequence

import aiofiles

from ..core.types import DownloadedLayer
from ..exceptions import CombineError, PathSafetyError
from ..utils.command import run_command
from ..utils.security import SecurityLogger

logger = logging.getLogger(__name__)

INSTALL_ARCHIVE = "install.tar.bz"
PARTIAL_SUFFIX = ".partial"


def is_unsafe_member_name(name: str) -> bool:
    """Check if an archive member name escapes the archive root."""
    if name.startswith("/") or name.startswith("\\"):
        return True
    normalized = posixpath.normpath(name.replace("\\", "/"))
    return normalized == ".." or normalized.startswith("../")


def _check_member(
    member: tarfile.TarInfo, layer: DownloadedLayer, audit: SecurityLogger | None
) -> None:
    unsafe = is_unsafe_member_name(member.name) or (
        member.islnk() and is_unsafe_member_name(member.linkname)
    )
    if not unsafe:
        return

    if audit is not None:
        audit.log_path_traversal(member.name, f"layer{layer.ordinal}")
    raise PathSafetyError(
        f"Layer {layer.ordinal} contains an entry outside the root: {member.name!r}"
    )


def _concatenate_archives(
    layers: Sequence[DownloadedLayer],
    destination: Path,
    cancelled: threading.Event,
    audit: SecurityLogger | None,
) -> bool:
    """Append every member of each layer to ``destination`` in order.

    Returns False if ``cancelled`` was set before the work finished.
    """
    with tarfile.open(destination, "w", format=tarfile.PAX_FORMAT) as out:
        for layer in layers:
            logger.debug("Appending layer %d from %s", layer.ordinal, layer.path)
            # Stream mode reads plain, gzip, bzip2 and xz layers alike.
            with tarfile.open(layer.path, "r|*") as src:
                for member in src:
                    if cancelled.is_set():
                        return False
                    _check_member(member, layer, audit)
                    fileobj = src.extractfile(member) if member.isreg() else None
                    out.addfile(member, fileobj)
    return True


async def _concatenate_with_tarfile(
    layers: Sequence[DownloadedLayer],
    destination: Path,
    audit: SecurityLogger | None,
) -> None:
    loop = asyncio.get_running_loop()
    cancelled = threading.Event()
    future = loop.run_in_executor(
        None, _concatenate_archives, layers, destination, cancelled, audit
    )
    try:
        await asyncio.shield(future)
    except asyncio.CancelledError:
        cancelled.set()
        # The worker thread still holds the destination open.
        await asyncio.wait([future])
        raise


async def _concatenate_with_command(
    tar_command: str, layers: Sequence[DownloadedLayer], destination: Path
) -> None:
    argv = [tar_command, "-cf", str(destination)]
    argv.extend(f"@{layer.path}" for layer in layers)
    await run_command(argv)


async def _copy_file(source: Path, destination: Path, chunk_size: int) -> None:
    async with aiofiles.open(source, "rb") as src:
        async with aiofiles.open(destination, "wb") as dst:
            while True:
                chunk = await src.read(chunk_size)
                if not chunk:
                    break
                await dst.write(chunk)


async def combine_layers(
    layers: Sequence[DownloadedLayer],
    work_dir: Path,
    *,
    tar_command: str | None = None,
    audit: SecurityLogger | None = None,
    chunk_size: int = 64 * 1024,
) -> Path:
    """Combine downloaded layers into ``work_dir/install.tar.bz``.

    A single layer is copied byte for byte. Several layers are concatenated
    in ordinal order, either with :mod:`tarfile` or, when ``tar_command`` is
    given, with an external bsdtar-compatible ``tar -cf out @layer ...``.

    The archive is built under a temporary name and renamed on success, so
    the canonical path never holds a partial archive.

    Args:
        layers: Downloaded layers
        work_dir: Directory receiving the archive
        tar_command: External tar program, None to use tarfile
        audit: Security logger for unsafe archive entries
        chunk_size: Copy buffer size

    Returns:
        Path of the combined archive

    Raises:
        CombineError: If there is nothing to combine or combination fails
        PathSafetyError: If a layer contains entries escaping the root
    """
    if not layers:
        raise CombineError("No layers to combine")

    ordered = sorted(layers, key=lambda layer: layer.ordinal)
    for layer in ordered:
        if not Path(layer.path).is_file():
            raise CombineError(f"Layer {layer.ordinal} is missing: {layer.path}")

    output = Path(work_dir) / INSTALL_ARCHIVE
    partial = output.with_name(output.name + PARTIAL_SUFFIX)

    logger.info("Combining %d layers into %s", len(ordered), output)
    try:
        if len(ordered) == 1:
            await _copy_file(Path(ordered[0].path), partial, chunk_size)
        elif tar_command:
            await _concatenate_with_command(tar_command, ordered, partial)
        else:
            await _concatenate_with_tarfile(ordered, partial, audit)
        os.replace(partial, output)
    except (OSError, tarfile.TarError, RuntimeError) as e:
        partial.unlink(missing_ok=True)
        raise CombineError(f"Failed to combine layers: {e}") from e
    except BaseException:
        partial.unlink(missing_ok=True)
        raise

    logger.info("Combined archive written to %s", output)
    return output
