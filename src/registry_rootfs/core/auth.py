"""Pull token handling for registry requests."""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any

import aiohttp

from ..exceptions import AuthenticationError
from .session import parse_json_response
from .types import DEFAULT_TOKEN_LIFETIME, AuthToken, RegistryConfig

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"(\.\d{6})\d+")


def pull_scope(repository: str) -> str:
    return f"repository:{repository}:pull"


def _parse_issued_at(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp, falling back to the current time."""
    now = datetime.now(timezone.utc)
    if not isinstance(value, str) or not value:
        return now

    # Registries send nanosecond precision, fromisoformat accepts microseconds.
    text = _FRACTION.sub(r"\1", value.strip()).replace("Z", "+00:00")
    try:
        issued = datetime.fromisoformat(text)
    except ValueError:
        return now

    if issued.tzinfo is None:
        issued = issued.replace(tzinfo=timezone.utc)
    return issued


def parse_token_response(data: Any) -> AuthToken:
    """Build an AuthToken from a token endpoint response.

    Raises:
        AuthenticationError: If the body is not an object or has no token
    """
    if not isinstance(data, dict):
        raise AuthenticationError("Token response is not a JSON object")

    token = data.get("token")
    if not isinstance(token, str) or not token:
        raise AuthenticationError("Auth endpoint returned no token")

    expires_in = data.get("expires_in")
    if isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in <= 0:
        expires_in = DEFAULT_TOKEN_LIFETIME

    return AuthToken(
        value=token,
        expires_in=expires_in,
        issued_at=_parse_issued_at(data.get("issued_at")),
    )


class TokenProvider:
    """Owns the bearer token for one repository.

    Usage:
        provider = TokenProvider(session, config, "library/alpine")
        token = await provider.current()
        # ... on a 401 response ...
        provider.invalidate()
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: RegistryConfig,
        repository: str,
    ) -> None:
        self.session = session
        self.config = config
        self.repository = repository
        self._token: AuthToken | None = None

    async def get_token(self) -> AuthToken:
        """Request a fresh pull token from the auth endpoint.

        Returns:
            AuthToken, which also becomes the current token

        Raises:
            AuthenticationError: If the request fails or the response is
                malformed
        """
        params = {"service": self.config.service, "scope": pull_scope(self.repository)}
        headers = {}
        if self.config.username and self.config.password:
            try:
                headers["Authorization"] = aiohttp.encode_basic_auth(
                    self.config.username, self.config.password
                )
            except ValueError as e:
                raise AuthenticationError(f"Invalid registry credentials: {e}") from e

        logger.debug("Requesting pull token for %s", self.repository)
        try:
            async with self.session.get(
                self.config.auth_url, params=params, headers=headers
            ) as resp:
                if resp.status != 200:
                    raise AuthenticationError(
                        f"Token request for {self.repository} failed: HTTP {resp.status}"
                    )
                data = await parse_json_response(resp)
        except ValueError as e:
            raise AuthenticationError(f"Malformed token response: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        self._token = parse_token_response(data)
        logger.debug(
            "Got token for %s, expires at %s",
            self.repository,
            self._token.expires_at.isoformat(),
        )
        return self._token

    async def current(self) -> AuthToken:
        """Return the held token, fetching a new one if missing or expired."""
        if self._token is None or self._token.is_expired():
            return await self.get_token()
        return self._token

    def invalidate(self) -> None:
        """Drop the held token so the next call to current() refetches."""
        self._token = None
