"""Docker Registry API v2 async pull client."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import aiohttp

from ..exceptions import (
    BlobDownloadError,
    ManifestError,
    RegistryConnectionError,
    RegistryError,
)
from ..operations.manifests import parse_manifest_layers
from .auth import TokenProvider
from .session import create_session, parse_json_response
from .types import DOCKER_MANIFEST_V2, ImageReference, LayerDescriptor, RegistryConfig

logger = logging.getLogger(__name__)


class RegistryClient:
    """Docker Registry API v2 async client for pulling image layers."""

    def __init__(self, config: Optional[RegistryConfig] = None) -> None:
        """Initialize the registry client.

        Args:
            config: Registry configuration, Docker Hub defaults when omitted
        """
        self.config = config or RegistryConfig()
        self.session: Optional[aiohttp.ClientSession] = None
        self._providers: Dict[str, TokenProvider] = {}

    async def __aenter__(self) -> "RegistryClient":
        """Enter async context manager."""
        if not self.session:
            self.session = await create_session(self.config)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()
        self._providers.clear()

    def token_provider(self, repository: str) -> TokenProvider:
        """Return the token provider owning the token for ``repository``."""
        if self.session is None:
            raise RegistryError("RegistryClient used outside of its context manager")
        if repository not in self._providers:
            self._providers[repository] = TokenProvider(
                self.session, self.config, repository
            )
        return self._providers[repository]

    def _url(self, reference: ImageReference, kind: str, identifier: str) -> str:
        base = self.config.registry_url(reference.registry)
        return f"{base}/v2/{reference.repository}/{kind}/{identifier}"

    @asynccontextmanager
    async def _authorized_get(
        self,
        reference: ImageReference,
        url: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        """GET ``url`` with the repository's bearer token.

        A 401 response drops the token and the request is repeated once with
        a freshly issued one.
        """
        provider = self.token_provider(reference.repository)
        headers = dict(headers or {})

        token = await provider.current()
        headers["Authorization"] = f"Bearer {token.value}"
        resp = await self.session.get(url, headers=headers)

        if resp.status == 401:
            resp.release()
            logger.info("Unauthorized for %s, refreshing pull token", url)
            provider.invalidate()
            token = await provider.current()
            headers["Authorization"] = f"Bearer {token.value}"
            resp = await self.session.get(url, headers=headers)

        try:
            yield resp
        finally:
            resp.release()

    async def get_manifest(
        self, reference: ImageReference
    ) -> Tuple[Dict[str, Any], Optional[str]]:
        """Retrieve the manifest for ``reference``.

        Args:
            reference: Parsed image reference

        Returns:
            Manifest dictionary and the response content type

        Raises:
            AuthenticationError: If no pull token can be obtained
            ManifestError: If retrieval fails
        """
        url = self._url(reference, "manifests", reference.tag)
        try:
            async with self._authorized_get(
                reference, url, {"Accept": DOCKER_MANIFEST_V2}
            ) as resp:
                if resp.status != 200:
                    raise ManifestError(
                        f"Failed to get manifest for {reference}: HTTP {resp.status}"
                    )
                document = await parse_json_response(resp)
                return document, resp.content_type
        except ValueError as e:
            raise ManifestError(f"Malformed manifest for {reference}: {e}") from e
        except aiohttp.ClientConnectorError as e:
            raise RegistryConnectionError(
                f"Cannot connect to registry {reference.registry}: {e}"
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ManifestError(f"Failed to get manifest: {e}") from e

    async def get_layers(self, reference: ImageReference) -> List[LayerDescriptor]:
        """Fetch the manifest and return its layers in manifest order.

        Raises:
            ManifestError: If the manifest cannot be retrieved or parsed
            UnsupportedManifestError: If the manifest is not a
                single-platform image manifest
        """
        document, content_type = await self.get_manifest(reference)
        layers = parse_manifest_layers(document, content_type)
        logger.info("%s has %d layers", reference, len(layers))
        return layers

    @asynccontextmanager
    async def open_blob(
        self, reference: ImageReference, digest: str
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        """Open a streaming response for the blob ``digest``.

        Raises:
            BlobDownloadError: If the registry does not return the blob
        """
        url = self._url(reference, "blobs", digest)
        async with self._authorized_get(reference, url) as resp:
            if resp.status != 200:
                raise BlobDownloadError(
                    f"Failed to get blob {digest}: HTTP {resp.status}"
                )
            yield resp
