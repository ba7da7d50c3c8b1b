# This file marks pyavatartracker.managers as a Python package.

from .settings import Settings
from .avatar_initializer import AvatarInitializer
from .agent_tracker import AgentTracker
from .tracker_registry import TrackerRegistry

__all__ = [
    "Settings",
    "AvatarInitializer",
    "AgentTracker",
    "TrackerRegistry",
]
