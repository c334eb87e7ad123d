"""
OAuth2 token management for the Empolis API.

Empolis uses the Resource Owner Password Credentials grant. Access tokens
are short-lived; a refresh token allows renewing them without resending the
user's password. TokenManager caches both and renews them on demand.

Renewal is single-flight: while one caller is waiting on the token
endpoint, concurrent callers wait for the same result instead of issuing
their own requests.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from .errors import AuthError
from .types import Credentials, TokenState

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth2/token"

# Subtracted from the server-reported lifetime so a token never expires
# while a request that carries it is in flight
EXPIRY_MARGIN = 60.0

# Used when the token response doesn't report a refresh token lifetime
DEFAULT_REFRESH_LIFETIME = 24 * 60 * 60.0


class TokenManager:
    """Acquires, caches and refreshes bearer tokens."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        credentials: Credentials,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client: HTTP client whose base_url is the Empolis tenant URL
            credentials: Client and user credentials
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self._client = client
        self._credentials = credentials
        self._clock = clock
        self._state = TokenState()
        self._inflight: Optional[asyncio.Task] = None

    @property
    def state(self) -> TokenState:
        """Current token state (read-only snapshot)."""
        return self._state

    async def get_token(self) -> str:
        """
        Return a valid access token, renewing it if necessary.

        Raises:
            AuthError: If credentials are missing or the token endpoint
                rejects the request
        """
        if self._state.access_valid(self._clock()):
            logger.debug("Using cached access token")
            return self._state.access_token

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._renew())
            self._inflight.add_done_callback(self._clear_inflight)
        else:
            logger.debug("Token renewal in progress, waiting for it")

        # shield: a cancelled caller must not cancel the renewal other
        # callers are waiting on
        return await asyncio.shield(self._inflight)

    def clear(self) -> None:
        """Discard all cached tokens."""
        self._state = TokenState()

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None
        # Mark the exception retrieved; every waiter has already seen it
        if not task.cancelled():
            task.exception()

    async def _renew(self) -> str:
        now = self._clock()

        if self._state.refresh_valid(now):
            logger.debug("Attempting to use refresh token")
            try:
                payload = await self._request_token({
                    "grant_type": "refresh_token",
                    "refresh_token": self._state.refresh_token,
                })
                return self._store(payload, now, "Token refreshed")
            except AuthError as e:
                logger.warning("Failed to refresh token, requesting new tokens: %s", e)
                self.clear()

        creds = self._credentials
        if not creds.complete:
            self.clear()
            raise AuthError(
                "Missing credentials: set EMPOLIS_CLIENT_ID, EMPOLIS_CLIENT_SECRET, "
                "EMPOLIS_USERNAME and EMPOLIS_PASSWORD"
            )

        try:
            payload = await self._request_token({
                "grant_type": "password",
                "username": creds.username,
                "password": creds.password,
                "scope": creds.scope,
            })
        except AuthError:
            self.clear()
            raise
        return self._store(payload, now, "New tokens cached")

    async def _request_token(self, form: dict[str, str]) -> dict:
        """POST a grant to the token endpoint; normalize every failure to AuthError."""
        creds = self._credentials
        try:
            resp = await self._client.post(
                TOKEN_PATH,
                data=form,
                auth=(creds.client_id, creds.client_secret),
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise AuthError(
                f"Token request ({form['grant_type']}) rejected: "
                f"{e.response.status_code} {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise AuthError(f"Token request ({form['grant_type']}) failed: {e}") from e
        except ValueError as e:
            raise AuthError(f"Token endpoint returned invalid JSON: {e}") from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthError("Token endpoint response has no access_token")
        return payload

    def _store(self, payload: dict, issued_at: float, what: str) -> str:
        """Replace the whole token state from a token response."""
        try:
            expires_in = float(payload.get("expires_in", 0))
            refresh_lifetime = float(payload.get("refresh_expires_in", DEFAULT_REFRESH_LIFETIME))
        except (TypeError, ValueError) as e:
            self.clear()
            raise AuthError(f"Token endpoint returned invalid lifetimes: {e}") from e

        self._state = TokenState(
            access_token=payload["access_token"],
            access_expiry=issued_at + expires_in - EXPIRY_MARGIN,
            refresh_token=payload.get("refresh_token"),
            refresh_expiry=issued_at + refresh_lifetime,
        )
        logger.debug("%s, access token valid for %.0fs", what, expires_in - EXPIRY_MARGIN)
        return self._state.access_token
