"""
Tracker runtime settings and constants.
"""
import logging

from pyavatartracker.types.enums import LogLevel

_LOG_LEVEL_MAP = {
    LogLevel.NONE: logging.CRITICAL + 10,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

class Settings:
    """
    Manages tracker settings: initialization timing, part resolution limits,
    event-queue polling and logging. Timings are expressed in milliseconds
    and converted to seconds at the point of use.
    """

    # --- Class Variables (Constants and Static Defaults) ---
    USER_AGENT: str = "PyAvatarTracker/0.1"
    """HTTP User-Agent header passed by the event-queue feed."""

    LOG_LEVEL: LogLevel = LogLevel.INFO
    """Default logging level for the library."""

    SETTLE_DELAY: float = 1000.0 / 30  # milliseconds (one frame at 30 fps)
    """Debounce applied after parts are located, before the avatar is declared usable."""

    HUMANOID_NAME: str = "Humanoid"
    """Name of the health-reporting child of an avatar."""

    ROOT_PART_NAME: str = "HumanoidRootPart"
    """Name of the spatial anchor child of an avatar."""

    ANIMATOR_NAME: str = "Animator"
    """Name of the animation child of the humanoid."""

    # --- Instance Variables (Configurable per TrackerClient instance) ---
    def __init__(self, client_ref=None, **overrides):
        """
        Initializes the Settings for a TrackerClient instance.

        Args:
            client_ref: The TrackerClient this Settings object belongs to, if any.
            **overrides: Instance attribute values replacing the defaults below.
        """
        self.client_ref = client_ref

        self.settle_delay: float = self.SETTLE_DELAY  # ms
        """Delay between part resolution and promotion."""

        self.placement_poll_interval: float = 1000.0 / 30  # ms
        """Interval at which an initializer re-checks whether its avatar is in the world."""

        self.part_wait_timeout: float | None = None  # ms
        """Upper bound on waiting for a required avatar part. None waits forever."""

        self.event_queue_url: str | None = None
        """Event queue capability polled by EventQueueFeed. None disables the feed."""

        self.event_queue_poll_interval: int = 1000  # ms
        """Delay before the next poll after an empty or failed event-queue response."""

        self.http_timeout: int = 30 * 1000  # ms
        """Timeout for a single event-queue HTTP request."""

        self.log_status_changes: bool = False
        """Log every status flip at INFO instead of DEBUG."""

        self.log_level: LogLevel = self.LOG_LEVEL
        """Level applied to the package logger by configure_logging()."""

        for name, value in overrides.items():
            if not hasattr(self, name):
                raise AttributeError(f"Unknown setting '{name}'")
            setattr(self, name, value)

    @property
    def settle_delay_seconds(self) -> float:
        return self.settle_delay / 1000.0

    @property
    def placement_poll_seconds(self) -> float:
        return self.placement_poll_interval / 1000.0

    def configure_logging(self) -> logging.Logger:
        """Applies ``log_level`` to the ``pyavatartracker`` logger and returns it."""
        package_logger = logging.getLogger("pyavatartracker")
        package_logger.setLevel(_LOG_LEVEL_MAP[LogLevel(self.log_level)])
        return package_logger
