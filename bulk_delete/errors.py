"""
Error taxonomy for Gmail Bulk Delete
All of these are recovered at the boundary where they occur and shown as notices
"""

from typing import Optional


class BulkDeleteError(Exception):
    """Base class for client errors"""


class AuthRequired(BulkDeleteError):
    """Stats probe failed - the user must sign in"""

    def __init__(self, status: Optional[int] = None):
        self.status = status
        detail = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"Not authenticated{detail}. Please sign in with Gmail.")


class ChannelUnavailable(BulkDeleteError):
    """Command attempted while the event channel is not connected"""

    def __init__(self, message: str = "Real-time connection not available. Please try again once reconnected."):
        super().__init__(message)


class DuplicateOperation(BulkDeleteError):
    """Command attempted for a category that already has a delete in flight"""

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Delete already in progress for category: {category}")


class ProtectedCategory(BulkDeleteError):
    """Category can never be bulk deleted"""

    def __init__(self, category: str):
        self.category = category
        super().__init__(
            f"Category '{category}' cannot be bulk deleted. "
            "Use Gmail's 'Empty Trash now' button instead."
        )


class TransportFailure(BulkDeleteError):
    """An HTTP call or channel emit failed"""


class ServerReportedError(BulkDeleteError):
    """The server reported a failure for a category delete"""

    def __init__(self, category: str, message: str):
        self.category = category
        self.server_message = message
        super().__init__(f"Error deleting {category}: {message}")
