"""
Strava bearer-credential provider.

Strava access tokens live for six hours. A long-lived refresh token
(from the app's OAuth grant, configured via STRAVA_REFRESH_TOKEN) is
exchanged for a fresh access token whenever the cached one is missing
or about to expire:

    POST https://www.strava.com/oauth/token
        client_id, client_secret, refresh_token, grant_type=refresh_token
    -> {"access_token": "...", "refresh_token": "...", "expires_at": 1736930000}

Strava may rotate the refresh token on each exchange; the newest one is
kept in memory for the next exchange.
"""
import asyncio
import logging
import time
from typing import Optional

import requests

from stridesync.strava.client import ProviderUnavailable

logger = logging.getLogger(__name__)

STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
EXPIRY_MARGIN_SECONDS = 60


class CredentialError(ProviderUnavailable):
    """Raised when no access token can be obtained."""


class StravaAuth:
    """
    Caches a Strava access token and refreshes it on demand.

    Usage:
        auth = StravaAuth(client_id, client_secret, refresh_token)
        token = await auth.get_access_token()
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        session: Optional[requests.Session] = None,
        token_url: str = STRAVA_TOKEN_URL,
        timeout: float = 30.0,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._session = session or requests.Session()
        self._token_url = token_url
        self._timeout = timeout
        self._access_token: Optional[str] = None
        self._expires_at: float = 0.0

    def has_credentials(self) -> bool:
        return bool(self._client_id and self._client_secret and self._refresh_token)

    def _token_valid(self) -> bool:
        return self._access_token is not None and time.time() < self._expires_at - EXPIRY_MARGIN_SECONDS

    async def get_access_token(self) -> str:
        """
        Return a valid access token, refreshing it in the thread pool if needed.

        Raises:
            CredentialError: if credentials are missing or Strava rejects them.
        """
        if self._token_valid():
            return self._access_token
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._refresh_sync)

    def _refresh_sync(self) -> str:
        if not self.has_credentials():
            raise CredentialError(
                "Missing Strava credentials. Set STRAVA_CLIENT_ID, "
                "STRAVA_CLIENT_SECRET and STRAVA_REFRESH_TOKEN."
            )

        try:
            resp = self._session.post(
                self._token_url,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise CredentialError(f"Token refresh request failed: {exc}") from exc

        if not resp.ok:
            raise CredentialError(f"Token refresh failed: HTTP {resp.status_code}")

        try:
            body = resp.json()
            access_token = body["access_token"]
            expires_at = float(body.get("expires_at") or time.time() + body.get("expires_in", 0))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise CredentialError(f"Token refresh returned an unreadable body: {exc!r}") from exc
        if not access_token:
            raise CredentialError("Token refresh returned an empty access token")

        self._access_token = access_token
        self._expires_at = expires_at
        if body.get("refresh_token"):
            self._refresh_token = body["refresh_token"]
        logger.info("Strava access token refreshed (expires at %d)", int(self._expires_at))
        return self._access_token
