"""
Stats API - HTTP client for the bulk delete server
Blocking requests calls are pushed off the event loop with asyncio.to_thread
"""

import asyncio
import logging
from typing import Dict, Optional
from urllib.parse import urlparse

import requests

from bulk_delete.errors import AuthRequired, TransportFailure
from bulk_delete.models import ClientConfig


logger = logging.getLogger(__name__)


class StatsApi:
    """Credentialed HTTP calls against the server's /api endpoints"""

    def __init__(self, config: ClientConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

        cookie = config.cookie_pair()
        if cookie:
            name, value = cookie
            self.session.cookies.set(name, value, domain=urlparse(config.api_base_url).hostname or "")

    @property
    def login_url(self) -> str:
        """Browser redirect target that starts the OAuth flow"""
        return f"{self.config.api_base_url}/auth/gmail"

    def cookie_header(self) -> Optional[str]:
        """Cookie header value used to credential the event channel"""
        cookies = "; ".join(f"{name}={value}" for name, value in self.session.cookies.items())
        return cookies or None

    # === Endpoints ===

    async def fetch_stats(self) -> Dict:
        """GET /api/stats, returns {profile, stats}"""
        response = await self._request("GET", "/api/stats")
        if not response.ok:
            logger.warning(f"Stats response not OK: {response.status_code}")
            raise AuthRequired(response.status_code)
        return self._json(response)

    async def fetch_user_count(self) -> int:
        """GET /api/user-count"""
        response = await self._request("GET", "/api/user-count")
        if not response.ok:
            raise TransportFailure(f"User count request failed: HTTP {response.status_code}")
        data = self._json(response)
        try:
            return int(data.get("count", 0))
        except (TypeError, ValueError) as e:
            raise TransportFailure(f"Invalid user count payload: {data!r}") from e

    async def logout(self) -> None:
        """POST /api/logout"""
        response = await self._request("POST", "/api/logout")
        if not response.ok:
            raise TransportFailure(f"Logout request failed: HTTP {response.status_code}")

    def clear_credentials(self) -> None:
        """Forget the session cookie locally"""
        self.session.cookies.clear()

    # === Transport ===

    async def _request(self, method: str, path: str) -> requests.Response:
        url = f"{self.config.api_base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            return await asyncio.to_thread(
                lambda: self.session.request(method, url, timeout=self.config.request_timeout)
            )
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise TransportFailure(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(response: requests.Response) -> Dict:
        try:
            data = response.json()
        except ValueError as e:
            raise TransportFailure(f"Invalid JSON from {response.url}") from e
        if not isinstance(data, dict):
            raise TransportFailure(f"Unexpected payload from {response.url}: {type(data).__name__}")
        return data
