# Main __init__.py for the types sub-package

from .enums import (
    LogLevel, TrackerStatus, InitializerPhase, AnimationPriority, FeedEventType
)

__all__ = [
    "LogLevel", "TrackerStatus", "InitializerPhase", "AnimationPriority", "FeedEventType",
]
