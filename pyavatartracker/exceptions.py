"""Tracker exception hierarchy.

All tracker-specific exceptions inherit from TrackerError. Non-blocking queries
never raise: absence is reported as ``None``.
"""


class TrackerError(Exception):
    """Base exception for all tracker errors."""


class LifecycleEnded(TrackerError):
    """Raised when an await is pending against a tracker or registry that was torn down."""

    def __init__(self, agent=None, reason: str = "tracker destroyed") -> None:
        self.agent = agent
        self.reason = reason
        if agent is None:
            super().__init__(f"Lifecycle ended: {reason}")
        else:
            super().__init__(f"Lifecycle ended for {agent}: {reason}")


class PartNotFound(TrackerError):
    """Raised when a child part does not appear before its wait timeout."""

    def __init__(self, parent_name: str, child_name: str) -> None:
        self.parent_name = parent_name
        self.child_name = child_name
        super().__init__(f"'{child_name}' did not appear under '{parent_name}'")
