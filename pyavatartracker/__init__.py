"""PyAvatarTracker: alive/dead tracking of agents and their transient avatars."""

__version__ = "0.1.0"

from .exceptions import TrackerError, LifecycleEnded, PartNotFound
from .signals import Signal
from .types import TrackerStatus, InitializerPhase, LogLevel
from .managers import Settings, AvatarInitializer, AgentTracker, TrackerRegistry
from .world import World, Agent, AvatarModel, Humanoid, Animator, AnimationTrack, Part, Instance
from .client import TrackerClient

__all__ = [
    "__version__",
    "TrackerError", "LifecycleEnded", "PartNotFound",
    "Signal",
    "TrackerStatus", "InitializerPhase", "LogLevel",
    "Settings", "AvatarInitializer", "AgentTracker", "TrackerRegistry",
    "World", "Agent", "AvatarModel", "Humanoid", "Animator", "AnimationTrack", "Part", "Instance",
    "TrackerClient",
]
