import logging
from typing import Any, Optional

from .managers import Settings, TrackerRegistry, AgentTracker
from .network import EventQueueFeed
from .world import World

logger = logging.getLogger(__name__)

class TrackerClient:
    def __init__(self, world: Optional[World] = None, settings: Optional[Settings] = None):
        logger.info("TrackerClient initializing...")
        self.settings = settings or Settings(self)
        if self.settings.client_ref is None:
            self.settings.client_ref = self
        self.world = world or World()
        self.registry = TrackerRegistry(self.settings)
        self.feed: EventQueueFeed | None = EventQueueFeed(self.world, self.settings) if self.settings.event_queue_url else None
        self.started = False

    def __str__(self) -> str:
        return f"TrackerClient(trackers={len(self.registry)}, feed={'on' if self.feed else 'off'})"

    async def start(self):
        """Bootstraps trackers for the agents already in the world and starts the feed, if configured."""
        if self.started:
            return
        self.settings.configure_logging()
        self.registry.init(self.world)
        if self.feed is not None:
            await self.feed.start()
        self.started = True
        logger.info(f"TrackerClient started: {self}")

    async def stop(self):
        if not self.started:
            return
        if self.feed is not None:
            await self.feed.stop()
        self.registry.shutdown()
        self.started = False
        logger.info("TrackerClient stopped.")

    async def __aenter__(self) -> 'TrackerClient':
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def get_tracker(self, agent: Any) -> Optional[AgentTracker]:
        return self.registry.lookup(agent)

    async def await_tracker(self, agent: Any) -> AgentTracker:
        return await self.registry.await_lookup(agent)

    def get_local_tracker(self) -> Optional[AgentTracker]:
        return self.registry.get_local_tracker()
