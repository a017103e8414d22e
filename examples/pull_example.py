"""Example usage of the async rootfs puller."""

import asyncio
import logging
import sys

# Add parent directory to path
sys.path.insert(0, "src")

from registry_rootfs import (
    RegistryClient,
    RegistryConfig,
    RegistryError,
    download_image,
    parse_image_reference,
    pull_rootfs,
    working_directory,
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def inspect_image(image: str):
    """Show the layers of an image without downloading them."""
    config = RegistryConfig.from_env()
    reference = parse_image_reference(image, config.registry)

    async with RegistryClient(config) as client:
        layers = await client.get_layers(reference)

    total = sum(layer.size for layer in layers)
    logger.info(f"{reference}: {len(layers)} layers, {total / 1024 / 1024:.1f} MiB")
    for ordinal, layer in enumerate(layers, 1):
        logger.info(f"  {ordinal}. {layer.digest} ({layer.size} bytes)")


async def download_only(image: str):
    """Download raw layer files into a throwaway directory."""
    with working_directory() as work_dir:
        layers = await download_image(image, work_dir)
        for layer in layers:
            logger.info(f"  {layer.path.name}: {layer.size} bytes")


async def main():
    image = sys.argv[1] if len(sys.argv) > 1 else "library/alpine:3.18"

    try:
        await inspect_image(image)
        await download_only(image)

        archive = await pull_rootfs(image, "./rootfs")
        logger.info(f"✓ Root filesystem written to {archive}")

    except RegistryError as e:
        logger.error(f"Registry error: {e}")


if __name__ == "__main__":
    asyncio.run(main())
