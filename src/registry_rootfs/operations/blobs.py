"""Sequential layer blob downloads."""

import asyncio
import logging
from pathlib import Path
from typing import Sequence

import aiofiles
import aiohttp

from ..core.registry_client import RegistryClient
from ..core.types import DownloadedLayer, ImageReference, LayerDescriptor
from ..exceptions import BlobDownloadError, DigestMismatchError
from ..utils.digest import DigestVerifier

logger = logging.getLogger(__name__)

LAYER_FILE_TEMPLATE = "layer{ordinal}.tar.bz"


def layer_file_name(ordinal: int) -> str:
    """File name for the layer at 1-based ``ordinal``."""
    return LAYER_FILE_TEMPLATE.format(ordinal=ordinal)


async def download_layer(
    client: RegistryClient,
    reference: ImageReference,
    layer: LayerDescriptor,
    ordinal: int,
    work_dir: Path,
) -> DownloadedLayer:
    """Stream one layer blob to ``work_dir/layer<ordinal>.tar.bz``.

    Size and sha256 digest are checked while streaming unless verification
    is disabled in the client configuration. The partial file is removed on
    any failure.

    Raises:
        BlobDownloadError: If the transfer fails
        DigestMismatchError: If the content does not match the descriptor
    """
    path = Path(work_dir) / layer_file_name(ordinal)
    verify = client.config.verify_digests
    verifier = DigestVerifier(layer.digest, layer.size)

    logger.info("Downloading layer %d %s (%d bytes)", ordinal, layer.digest, layer.size)
    try:
        async with client.open_blob(reference, layer.digest) as resp:
            async with aiofiles.open(path, "wb") as f:
                async for chunk in resp.content.iter_chunked(client.config.chunk_size):
                    verifier.update(chunk)
                    if verify and verifier.overflowed:
                        raise DigestMismatchError(
                            f"Layer {ordinal} exceeds its declared size of "
                            f"{layer.size} bytes"
                        )
                    await f.write(chunk)

        if verify:
            if not verifier.size_matches():
                raise DigestMismatchError(
                    f"Layer {ordinal} size mismatch: got {verifier.size} bytes, "
                    f"expected {layer.size}"
                )
            if not verifier.digest_matches():
                raise DigestMismatchError(
                    f"Layer {ordinal} digest mismatch: got {verifier.digest}, "
                    f"expected {layer.digest}"
                )
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        path.unlink(missing_ok=True)
        raise BlobDownloadError(f"Failed to download layer {ordinal}: {e}") from e
    except OSError as e:
        path.unlink(missing_ok=True)
        raise BlobDownloadError(f"Cannot write layer {ordinal} to {path}: {e}") from e
    except BaseException:
        path.unlink(missing_ok=True)
        raise

    return DownloadedLayer(
        ordinal=ordinal, path=path, size=verifier.size, digest=layer.digest
    )


async def download_layers(
    client: RegistryClient,
    reference: ImageReference,
    layers: Sequence[LayerDescriptor],
    work_dir: Path,
) -> list[DownloadedLayer]:
    """Download every layer in manifest order, one at a time.

    The first failure aborts the remaining downloads.

    Args:
        client: Open registry client
        reference: Image the layers belong to
        layers: Layer descriptors in manifest order
        work_dir: Existing directory receiving ``layer<N>.tar.bz`` files

    Returns:
        Downloaded layers in manifest order
    """
    downloaded = []
    for ordinal, layer in enumerate(layers, 1):
        downloaded.append(
            await download_layer(client, reference, layer, ordinal, Path(work_dir))
        )
    return downloaded
