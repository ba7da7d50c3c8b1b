import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pyavatartracker.exceptions import LifecycleEnded
from pyavatartracker.signals import Signal
from .agent_tracker import AgentTracker
from .settings import Settings

if TYPE_CHECKING:
    from pyavatartracker.world import World

logger = logging.getLogger(__name__)


class TrackerRegistry:
    """
    Maps each present agent to its AgentTracker.

    ``init(world)`` creates a tracker for every agent already in the world and
    then subscribes to the world's join/leave and attach/detach feeds;
    ``shutdown()`` unsubscribes and destroys every tracker. The feed methods
    (``on_agent_joined`` and friends) can also be driven directly without a
    World.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.world: Optional['World'] = None
        self.local_agent: Any = None
        self._trackers: Dict[Any, AgentTracker] = {}
        self._lookup_waiters: Dict[Any, List[asyncio.Future]] = {}
        self._initialized = False
        self._shut_down = False
        self.on_tracker_added = Signal("tracker_added", owner=self)
        self.on_tracker_removed = Signal("tracker_removed", owner=self)

    def __len__(self) -> int:
        return len(self._trackers)

    def __contains__(self, agent: Any) -> bool:
        return agent in self._trackers

    def __repr__(self) -> str:
        return f"TrackerRegistry(trackers={len(self._trackers)}, shut_down={self._shut_down})"

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    def agents(self) -> List[Any]:
        return list(self._trackers.keys())

    def trackers(self) -> List[AgentTracker]:
        return list(self._trackers.values())

    # --- lifecycle ---------------------------------------------------------

    def init(self, world: Optional['World'] = None, local_agent: Any = None):
        if self._shut_down:
            raise LifecycleEnded(reason="registry already shut down")
        if self._initialized:
            logger.warning("TrackerRegistry.init called twice, ignored.")
            return
        self._initialized = True
        self.local_agent = local_agent
        if world is not None:
            self.world = world
            if self.local_agent is None:
                self.local_agent = world.local_agent
            for agent in world.get_agents():
                self.on_agent_joined(agent, agent.avatar)
            world.register_agent_joined_handler(self._on_world_agent_joined)
            world.register_agent_left_handler(self.on_agent_left)
            world.register_avatar_attached_handler(self.on_avatar_attached)
            world.register_avatar_detached_handler(self.on_avatar_detached)
        logger.info(f"TrackerRegistry initialized with {len(self._trackers)} tracker(s).")

    def shutdown(self):
        if self._shut_down:
            return
        self._shut_down = True
        if self.world is not None:
            self.world.unregister_agent_joined_handler(self._on_world_agent_joined)
            self.world.unregister_agent_left_handler(self.on_agent_left)
            self.world.unregister_avatar_attached_handler(self.on_avatar_attached)
            self.world.unregister_avatar_detached_handler(self.on_avatar_detached)
        trackers, self._trackers = self._trackers, {}
        for tracker in trackers.values():
            self.on_tracker_removed.fire(tracker)
            tracker.destroy()
        waiters, self._lookup_waiters = self._lookup_waiters, {}
        for agent, futs in waiters.items():
            for fut in futs:
                if not fut.done():
                    fut.set_exception(LifecycleEnded(agent, "registry shut down"))
        self.on_tracker_added.destroy()
        self.on_tracker_removed.destroy()
        logger.info(f"TrackerRegistry shut down, {len(trackers)} tracker(s) destroyed.")

    # --- agent / avatar feed -----------------------------------------------

    def _on_world_agent_joined(self, agent: Any):
        if self.world is not None and self.local_agent is None and self.world.local_agent is agent:
            self.local_agent = agent
        self.on_agent_joined(agent, getattr(agent, "avatar", None))

    def on_agent_joined(self, agent: Any, avatar: Any = None) -> Optional[AgentTracker]:
        if self._shut_down:
            logger.warning(f"TrackerRegistry: {agent} joined after shutdown, ignored.")
            return None
        tracker = self._trackers.get(agent)
        if tracker is not None:
            return tracker
        tracker = AgentTracker(agent, self.settings, avatar)
        self._trackers[agent] = tracker
        for fut in self._lookup_waiters.pop(agent, []):
            if not fut.done():
                fut.set_result(tracker)
        self.on_tracker_added.fire(tracker)
        return tracker

    def on_agent_left(self, agent: Any):
        tracker = self._trackers.pop(agent, None)
        if tracker is None:
            return
        self.on_tracker_removed.fire(tracker)
        tracker.destroy()

    def on_avatar_attached(self, agent: Any, handle: Any):
        tracker = self._trackers.get(agent)
        if tracker is None:
            logger.warning(f"TrackerRegistry: avatar attached for untracked {agent}, ignored.")
            return
        tracker.on_avatar_attached(handle)

    def on_avatar_detached(self, agent: Any, handle: Any = None):
        tracker = self._trackers.get(agent)
        if tracker is None:
            return
        tracker.on_avatar_detached(handle)

    # --- lookups -----------------------------------------------------------

    def lookup(self, agent: Any) -> Optional[AgentTracker]:
        return self._trackers.get(agent)

    def get_local_tracker(self) -> Optional[AgentTracker]:
        if self.local_agent is None:
            return None
        return self._trackers.get(self.local_agent)

    async def await_lookup(self, agent: Any) -> AgentTracker:
        """Returns the tracker for ``agent``, waiting for the agent to join if needed."""
        tracker = self._trackers.get(agent)
        if tracker is not None:
            return tracker
        if self._shut_down:
            raise LifecycleEnded(agent, "registry shut down")
        fut = asyncio.get_running_loop().create_future()
        self._lookup_waiters.setdefault(agent, []).append(fut)
        try:
            return await fut
        finally:
            futs = self._lookup_waiters.get(agent)
            if futs and fut in futs:
                futs.remove(fut)
                if not futs:
                    del self._lookup_waiters[agent]
