"""
Session Context - Facade over the per-session components
Created once per process; the Session Gate drives its init/teardown hooks
"""

import logging
from typing import Callable, Dict, Optional

from bulk_delete.api import StatsApi
from bulk_delete.channel import ChannelManager, default_client_factory
from bulk_delete.errors import BulkDeleteError
from bulk_delete.models import ClientConfig
from bulk_delete.orchestrator import DeleteOrchestrator
from bulk_delete.snapshot import SnapshotCache


logger = logging.getLogger(__name__)


def decline_all(category: str) -> bool:
    """Confirmation used when no front end is attached"""
    return False


class SessionContext:
    """Wires the API client, snapshot cache, channel and orchestrator together"""

    def __init__(
        self,
        config: ClientConfig,
        api: Optional[StatsApi] = None,
        client_factory: Callable = default_client_factory,
        confirm: Callable[[str], bool] = decline_all
    ):
        self.config = config
        self.api = api or StatsApi(config)

        self.snapshots = SnapshotCache(self.api)
        self.channel = ChannelManager(config.api_base_url, client_factory)
        self.orchestrator = DeleteOrchestrator(
            self.channel,
            confirm=confirm,
            refresh=self.snapshots.refresh,
            refresh_delay=config.refresh_delay,
        )
        self.channel.subscribe(self.orchestrator.handle)
        self.snapshots.add_listener(self.orchestrator.prune_completed)

        self.progress_callback: Optional[Callable] = None
        self.user_email = ""
        self.user_count = 0

    def set_progress_callback(self, callback: Callable[[str, Dict], None]):
        """Set callback for progress updates on every component"""
        self.progress_callback = callback
        self.snapshots.progress_callback = callback
        self.channel.progress_callback = callback
        self.orchestrator.progress_callback = callback

    # === Lifecycle Hooks ===

    async def init(self) -> None:
        """Called once the session is authenticated"""
        await self.channel.open(cookie=self.api.cookie_header())

    async def teardown(self) -> None:
        """Called when the session ends; drops all session state"""
        self.orchestrator.clear()
        await self.channel.close()
        self.snapshots.clear()
        self.user_email = ""
        logger.info("Session state cleared")

    # === Actions ===

    async def delete(self, category: str) -> bool:
        """Request a category delete, turning failures into notices"""
        try:
            return await self.orchestrator.request_delete(category)
        except BulkDeleteError as e:
            logger.warning(f"Delete of '{category}' rejected: {e}")
            await self.report_progress("notice", {"level": "warning", "message": str(e)})
            return False

    async def refresh(self) -> bool:
        return await self.snapshots.refresh()

    async def load_user_count(self) -> int:
        """Best-effort fetch of the app's user count"""
        try:
            self.user_count = await self.api.fetch_user_count()
        except BulkDeleteError as e:
            logger.debug(f"Failed to load user count: {e}")
        return self.user_count

    # === Progress ===

    async def report_progress(self, event: str, data: Dict) -> None:
        """Send progress update if callback is set"""
        if self.progress_callback:
            await self.progress_callback(event, data)
