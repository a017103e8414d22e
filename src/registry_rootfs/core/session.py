"""HTTP session helpers."""

import json
from typing import Any

import aiohttp

from .types import RegistryConfig


async def create_session(config: RegistryConfig | None = None) -> aiohttp.ClientSession:
    """Create an aiohttp session for registry traffic.

    Only connect and per-read timeouts are applied; a multi-gigabyte blob
    would never fit a total request timeout.
    """
    config = config or RegistryConfig()
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(
            total=None, sock_connect=config.timeout, sock_read=config.timeout
        ),
        headers={"User-Agent": config.user_agent},
    )


async def parse_json_response(resp: aiohttp.ClientResponse) -> Any:
    """Decode a JSON body regardless of the declared content type.

    Raises:
        ValueError: If the body is not valid UTF-8 JSON
    """
    body = await resp.read()
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Invalid JSON response from {resp.url}: {e}") from e
