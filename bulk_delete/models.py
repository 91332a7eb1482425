"""
Shared data models for Gmail Bulk Delete
"""

import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


# Hard policy: trash has its own provider-level lifecycle (auto-purge)
TRASH_LABEL = "trash"


class Phase(str, Enum):
    """Lifecycle phase of a single category delete"""
    STARTING = "starting"
    DELETING = "deleting"
    COMPLETE = "complete"


class Connectivity(str, Enum):
    """Event channel connection state"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class Category:
    """A named partition of mailbox messages"""
    label: str
    count: int
    percentage: float

    def to_dict(self) -> dict:
        return {"label": self.label, "count": self.count, "percentage": self.percentage}


@dataclass(frozen=True)
class MailboxSnapshot:
    """Last known mailbox statistics, replaced wholesale on refresh"""
    total_messages: int
    categories: Tuple[Category, ...]
    deletable_percentage: float
    is_estimate: bool = False
    note: Optional[str] = None

    def get(self, label: str) -> Optional[Category]:
        """Find a category by label"""
        for category in self.categories:
            if category.label == label:
                return category
        return None


@dataclass(frozen=True)
class Malformed:
    """Server payload that could not be normalized into a snapshot"""
    reason: str


@dataclass
class OperationState:
    """Progress of one in-flight bulk delete"""
    category: str
    deleted_count: int = 0
    phase: Phase = Phase.STARTING
    updated_at: float = field(default_factory=time.monotonic)

    @property
    def is_active(self) -> bool:
        return self.phase in (Phase.STARTING, Phase.DELETING)

    def progress_ratio(self, category_count: int) -> float:
        """Share of the displayed category count deleted so far, capped at 1.0"""
        if category_count <= 0:
            return 0.0
        return min(self.deleted_count / category_count, 1.0)


@dataclass
class ClientConfig:
    """Configuration for the bulk delete client"""
    api_base_url: str = "http://localhost:3000"
    session_cookie: Optional[str] = None
    refresh_delay: float = 1.0
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Build config from environment variables (call load_dotenv first)"""
        return cls(
            api_base_url=os.getenv("API_BASE_URL", cls.api_base_url).rstrip("/"),
            session_cookie=os.getenv("SESSION_COOKIE") or None,
            refresh_delay=float(os.getenv("REFRESH_DELAY_SECONDS", str(cls.refresh_delay))),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT_SECONDS", str(cls.request_timeout))),
        )

    def cookie_pair(self) -> Optional[Tuple[str, str]]:
        """Split SESSION_COOKIE 'name=value' into its parts"""
        if not self.session_cookie or "=" not in self.session_cookie:
            return None
        name, value = self.session_cookie.split("=", 1)
        return name.strip(), value.strip()
