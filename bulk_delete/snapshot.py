"""
Snapshot Cache - Holds the last mailbox statistics and normalizes server payloads
"""

import logging
import numbers
from typing import Callable, Dict, List, Optional, Union

from bulk_delete.api import StatsApi
from bulk_delete.errors import BulkDeleteError, TransportFailure
from bulk_delete.models import Category, MailboxSnapshot, Malformed


logger = logging.getLogger(__name__)


# === Normalization ===

def normalize_snapshot(raw) -> Union[MailboxSnapshot, Malformed]:
    """Normalize any accepted server stats shape into a MailboxSnapshot

    Accepted shapes:
        [ {label, count, percentage?}, ... ]
        {categories: [ {label, count, percentage?}, ... ], total?, ...}
        {categories: {label: {count, percentage?} | count}, total?, ...}
    """
    if isinstance(raw, MailboxSnapshot):
        return raw

    if isinstance(raw, list):
        meta: Dict = {}
        entries = raw
    elif isinstance(raw, dict):
        meta = raw
        entries = raw.get("categories")
        if entries is None:
            entries = []
    else:
        return Malformed(f"expected an object or list of categories, got {type(raw).__name__}")

    total = meta.get("total") or meta.get("totalMessages") or 0
    if not _is_count(total):
        return Malformed(f"invalid message total: {total!r}")
    total = int(total)

    if isinstance(entries, list):
        pairs = []
        for entry in entries:
            if not isinstance(entry, dict):
                return Malformed(f"category entry is not an object: {entry!r}")
            pairs.append((entry.get("label"), entry.get("count"), entry.get("percentage")))
    elif isinstance(entries, dict):
        pairs = []
        for label, value in entries.items():
            if isinstance(value, dict):
                pairs.append((label, value.get("count"), value.get("percentage")))
            else:
                pairs.append((label, value, None))
    else:
        return Malformed(f"categories must be a list or an object, got {type(entries).__name__}")

    categories: List[Category] = []
    seen = set()
    for label, count, percentage in pairs:
        if not isinstance(label, str) or not label:
            return Malformed(f"category without a label: {label!r}")
        if count is None:
            count = 0
        if not _is_count(count):
            return Malformed(f"invalid count for {label}: {count!r}")
        if percentage is not None and not _is_number(percentage):
            return Malformed(f"invalid percentage for {label}: {percentage!r}")
        if label in seen:
            logger.warning(f"Duplicate category label '{label}' in stats, keeping the first")
            continue
        seen.add(label)

        count = int(count)
        if percentage is None:
            percentage = count / total * 100 if total else 0.0
        categories.append(Category(label=label, count=count, percentage=_clamp(float(percentage))))

    server_percentage = meta.get("deletablePercentage")
    if server_percentage and _is_number(server_percentage):
        deletable = float(server_percentage)
    else:
        deletable = deletable_percentage(categories, total)

    note = meta.get("note")
    return MailboxSnapshot(
        total_messages=total,
        categories=tuple(categories),
        deletable_percentage=deletable,
        is_estimate=bool(note),
        note=note if isinstance(note, str) else None,
    )


def deletable_percentage(categories: List[Category], total_messages: int) -> float:
    """Share of the mailbox covered by the listed categories"""
    if not categories or total_messages <= 0:
        return 0.0
    return sum(category.count for category in categories) / total_messages * 100


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _is_count(value) -> bool:
    return _is_number(value) and value >= 0 and float(value).is_integer()


def _clamp(percentage: float) -> float:
    return max(0.0, min(percentage, 100.0))


# === Cache ===

class SnapshotCache:
    """Owns the current MailboxSnapshot; replaced wholesale, never mutated"""

    def __init__(self, api: StatsApi, progress_callback: Optional[Callable] = None):
        self.api = api
        self.progress_callback = progress_callback
        self.snapshot: Optional[MailboxSnapshot] = None
        self._listeners: List[Callable[[MailboxSnapshot], None]] = []

    def add_listener(self, listener: Callable[[MailboxSnapshot], None]) -> None:
        """Call listener after every successful snapshot replacement"""
        self._listeners.append(listener)

    @property
    def categories(self) -> List[Category]:
        return list(self.snapshot.categories) if self.snapshot else []

    async def ingest(self, raw) -> MailboxSnapshot:
        """Normalize raw stats and replace the snapshot, raises TransportFailure if malformed"""
        result = normalize_snapshot(raw)
        if isinstance(result, Malformed):
            logger.error(f"Malformed stats payload: {result.reason}")
            raise TransportFailure(f"Malformed stats payload: {result.reason}")

        self.snapshot = result
        logger.info(f"Snapshot updated: {result.total_messages:,} messages, {len(result.categories)} categories")

        for listener in self._listeners:
            listener(result)

        await self._report_progress("snapshot_updated", {
            "total_messages": result.total_messages,
            "categories": [category.to_dict() for category in result.categories],
            "deletable_percentage": result.deletable_percentage,
            "is_estimate": result.is_estimate,
        })
        return result

    async def refresh(self) -> bool:
        """Re-fetch statistics; on failure keep the previous snapshot"""
        try:
            data = await self.api.fetch_stats()
            await self.ingest(data.get("stats"))
            return True
        except BulkDeleteError as e:
            logger.warning(f"Failed to load stats: {e}")
            await self._report_progress("notice", {
                "level": "warning",
                "message": f"Could not refresh statistics: {e}",
            })
            return False

    def clear(self) -> None:
        self.snapshot = None

    # === Progress ===

    async def _report_progress(self, event: str, data: Dict) -> None:
        """Send progress update if callback is set"""
        if self.progress_callback:
            await self.progress_callback(event, data)
