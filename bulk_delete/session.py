"""
Session Gate - Authentication state for the bulk delete client
"""

import logging
import webbrowser
from typing import Callable

from bulk_delete.context import SessionContext
from bulk_delete.errors import AuthRequired, TransportFailure


logger = logging.getLogger(__name__)


class SessionGate:
    """Probes the stats endpoint and owns login/logout transitions"""

    def __init__(self, context: SessionContext, opener: Callable[[str], bool] = webbrowser.open):
        self.context = context
        self.opener = opener
        self.authenticated = False

    async def probe(self) -> bool:
        """Check authentication by loading stats; sets up or tears down the session"""
        api = self.context.api
        try:
            data = await api.fetch_stats()
        except (AuthRequired, TransportFailure) as e:
            logger.info(f"Not authenticated: {e}")
            await self._end_session()
            await self.context.report_progress("auth_required", {"message": str(AuthRequired())})
            return False

        profile = data.get("profile")
        if not isinstance(profile, dict):
            profile = {}
        self.authenticated = True
        self.context.user_email = profile.get("emailAddress") or "Unknown"
        logger.info(f"Authenticated as {self.context.user_email}")

        try:
            await self.context.snapshots.ingest(data.get("stats"))
        except TransportFailure as e:
            await self.context.report_progress("notice", {"level": "warning", "message": str(e)})

        if not self.context.channel.is_open:
            await self.context.init()

        await self.context.report_progress("session", {
            "authenticated": True,
            "email": self.context.user_email,
        })
        return True

    def login(self) -> str:
        """Send the user agent to the server's auth endpoint"""
        url = self.context.api.login_url
        logger.info(f"Opening {url}")
        self.opener(url)
        return url

    async def logout(self) -> None:
        """Log out on the server, then always clear local session state"""
        try:
            await self.context.api.logout()
        except TransportFailure as e:
            logger.error(f"Logout error: {e}")
            await self.context.report_progress("notice", {"level": "warning", "message": str(e)})
        finally:
            self.context.api.clear_credentials()
            await self._end_session()

    async def _end_session(self) -> None:
        self.authenticated = False
        await self.context.teardown()
        await self.context.report_progress("session", {"authenticated": False, "email": ""})
