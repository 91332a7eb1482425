"""
Delete Orchestrator - Tracks in-flight category deletes and applies channel events

Per-category states:
    Idle -> Starting -> Deleting -> Complete
    Starting | Deleting -> (error) -> Idle

All transitions run on the event loop thread, so registry updates for the
same category are serialized without locking.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Set

from bulk_delete.channel import ChannelManager
from bulk_delete.errors import (
    BulkDeleteError,
    ChannelUnavailable,
    DuplicateOperation,
    ProtectedCategory,
    ServerReportedError,
)
from bulk_delete.events import DELETE_ALL, CompleteEvent, DeleteAllCommand, ErrorEvent, InboundEvent, ProgressEvent
from bulk_delete.models import TRASH_LABEL, Connectivity, OperationState, Phase


logger = logging.getLogger(__name__)


class DeleteOrchestrator:
    """Registry of per-category delete operations keyed by label"""

    def __init__(
        self,
        channel: ChannelManager,
        confirm: Callable[[str], bool],
        refresh: Callable[[], Awaitable],
        refresh_delay: float = 1.0,
        progress_callback: Optional[Callable] = None
    ):
        self.channel = channel
        self.confirm = confirm
        self.refresh = refresh
        self.refresh_delay = refresh_delay
        self.progress_callback = progress_callback

        # label -> state, including Complete states still on display
        self.operations: Dict[str, OperationState] = {}
        # labels with a Starting/Deleting state
        self.active: Set[str] = set()

        self._refresh_tasks: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    # === Commands ===

    async def request_delete(self, category: str) -> bool:
        """Validate and send a delete-all command, returns False if the user declined"""
        if self.channel.connectivity != Connectivity.CONNECTED:
            raise ChannelUnavailable()

        if category in self.active:
            raise DuplicateOperation(category)

        if category == TRASH_LABEL:
            raise ProtectedCategory(category)

        if not self.confirm(category):
            logger.info(f"Delete of '{category}' declined by user")
            return False

        # Reserve before awaiting the send so a second request sees the entry
        self._register(category)
        try:
            await self.channel.send(DELETE_ALL, DeleteAllCommand(category=category).model_dump())
        except BulkDeleteError:
            self._evict(category)
            raise

        logger.info(f"Delete requested for category '{category}'")
        await self._report_progress("delete_started", {"category": category})
        return True

    # === Channel Events ===

    async def handle(self, event: InboundEvent) -> None:
        """Apply a typed inbound channel event"""
        if isinstance(event, ProgressEvent):
            await self.on_progress(event.category, event.deleted)
        elif isinstance(event, CompleteEvent):
            await self.on_complete(event.category, event.total_deleted)
        elif isinstance(event, ErrorEvent):
            await self.on_error(event.category, event.message)
        else:
            logger.warning(f"Unhandled channel event: {event!r}")

    async def on_progress(self, category: str, deleted: int) -> None:
        if category not in self.active:
            logger.debug(f"Ignoring progress for inactive category '{category}'")
            return

        state = self.operations[category]
        if deleted < state.deleted_count:
            # Counts are absolute; a lower value is kept as reported
            logger.warning(f"Progress for '{category}' went backwards: {state.deleted_count} -> {deleted}")

        state.phase = Phase.DELETING
        state.deleted_count = deleted
        state.updated_at = time.monotonic()

        await self._report_progress("delete_progress", {"category": category, "deleted": deleted})

    async def on_complete(self, category: str, total_deleted: int) -> None:
        state = self.operations.get(category)
        if state is None:
            state = OperationState(category=category)
            self.operations[category] = state

        state.phase = Phase.COMPLETE
        state.deleted_count = total_deleted
        state.updated_at = time.monotonic()
        self.active.discard(category)
        self._update_idle()

        logger.info(f"Delete complete for '{category}': {total_deleted:,} messages")
        self._schedule_refresh()
        await self._report_progress("delete_complete", {"category": category, "total_deleted": total_deleted})

    async def on_error(self, category: str, message: str) -> None:
        self._evict(category)

        error = ServerReportedError(category, message)
        logger.error(str(error))
        await self._report_progress("delete_error", {"category": category, "message": message})
        await self._report_progress("notice", {"level": "error", "message": str(error)})

    # === Registry ===

    def state(self, category: str) -> Optional[OperationState]:
        return self.operations.get(category)

    def is_active(self, category: str) -> bool:
        return category in self.active

    def stalled(self, older_than: float) -> List[str]:
        """Active categories with no event for at least older_than seconds"""
        now = time.monotonic()
        return sorted(
            label for label in self.active
            if now - self.operations[label].updated_at >= older_than
        )

    def prune_completed(self, _snapshot=None) -> None:
        """Drop Complete states once a fresh snapshot supersedes them"""
        for label in [label for label, state in self.operations.items() if state.phase == Phase.COMPLETE]:
            del self.operations[label]

    def clear(self) -> None:
        """Forget every operation and cancel pending refreshes (logout)"""
        for task in list(self._refresh_tasks):
            task.cancel()
        self._refresh_tasks.clear()
        self.operations.clear()
        self.active.clear()
        self._update_idle()

    async def wait_idle(self) -> None:
        """Wait until no category delete is in flight"""
        await self._idle.wait()

    async def wait_refreshes(self) -> None:
        """Wait for scheduled snapshot refreshes to finish"""
        if self._refresh_tasks:
            await asyncio.gather(*self._refresh_tasks, return_exceptions=True)

    @property
    def pending_refreshes(self) -> int:
        return len(self._refresh_tasks)

    def _register(self, category: str) -> None:
        self.operations[category] = OperationState(category=category)
        self.active.add(category)
        self._update_idle()

    def _evict(self, category: str) -> None:
        self.operations.pop(category, None)
        self.active.discard(category)
        self._update_idle()

    def _update_idle(self) -> None:
        if self.active:
            self._idle.clear()
        else:
            self._idle.set()

    # === Snapshot Refresh ===

    def _schedule_refresh(self) -> None:
        """Refresh the snapshot once the server's counts have had time to settle"""
        task = asyncio.create_task(self._delayed_refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._on_refresh_done)

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        self._refresh_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Snapshot refresh failed: {error!r}")

    async def _delayed_refresh(self) -> None:
        await asyncio.sleep(self.refresh_delay)
        await self.refresh()

    # === Progress ===

    async def _report_progress(self, event: str, data: Dict) -> None:
        """Send progress update if callback is set"""
        if self.progress_callback:
            await self.progress_callback(event, data)
