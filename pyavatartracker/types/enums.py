from enum import Enum, IntEnum

class LogLevel(IntEnum): NONE = 0; DEBUG = 1; INFO = 2; WARNING = 3; ERROR = 4

class TrackerStatus(Enum):
    """Alive/dead classification of an agent's current avatar."""
    ALIVE = "alive"
    DEAD = "dead"

    @staticmethod
    def from_dead_flag(dead: bool) -> "TrackerStatus":
        return TrackerStatus.DEAD if dead else TrackerStatus.ALIVE

class InitializerPhase(Enum):
    """Lifecycle of one AvatarInitializer."""
    STARTING = "starting"             # attached, waiting for world placement
    LOCATING_PARTS = "locating_parts" # placed, resolving Humanoid/RootPart/Animator
    READY = "ready"                   # promoted (or about to be) into the tracker
    ABANDONED = "abandoned"           # superseded, detached or owner destroyed

class AnimationPriority(IntEnum):
    """Priority of a loaded AnimationTrack. Higher values override lower ones."""
    CORE = 0
    IDLE = 1
    MOVEMENT = 2
    ACTION = 3

class FeedEventType(str, Enum):
    """Event names understood by the event-queue feed."""
    AGENT_JOINED = "AgentJoined"
    AGENT_LEFT = "AgentLeft"
    AVATAR_ATTACHED = "AvatarAttached"
    AVATAR_PLACED = "AvatarPlaced"
    AVATAR_DETACHED = "AvatarDetached"
    HEALTH_CHANGED = "HealthChanged"
