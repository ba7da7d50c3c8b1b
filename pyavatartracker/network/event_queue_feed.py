"""Event-queue feed driving a World from a remote capability.

The feed polls ``Settings.event_queue_url`` and expects a JSON body of the
form ``{"events": [{"event": "AgentJoined", "id": ..., ...}, ...]}``. Each
event is applied to the World, whose handlers in turn drive the
TrackerRegistry. See FeedEventType for the recognised event names.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from typing import Any, Callable, Dict, Optional

import httpx

from pyavatartracker.managers.settings import Settings
from pyavatartracker.types.enums import FeedEventType
from pyavatartracker.world import Agent, AvatarModel, World

logger = logging.getLogger(__name__)


def parse_agent_id(raw: Any) -> Any:
    """Agent ids are UUIDs when they parse as one and opaque strings otherwise."""
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return str(raw)


class EventQueueFeed:
    def __init__(self, world: World, settings: Settings) -> None:
        self.world = world
        self.settings = settings
        self.http: Optional[httpx.AsyncClient] = None
        self.events_applied: int = 0
        self._task: Optional[asyncio.Task] = None
        self._dispatch: Dict[FeedEventType, Callable[[Dict[str, Any]], bool]] = {
            FeedEventType.AGENT_JOINED: self._on_agent_joined,
            FeedEventType.AGENT_LEFT: self._on_agent_left,
            FeedEventType.AVATAR_ATTACHED: self._on_avatar_attached,
            FeedEventType.AVATAR_PLACED: self._on_avatar_placed,
            FeedEventType.AVATAR_DETACHED: self._on_avatar_detached,
            FeedEventType.HEALTH_CHANGED: self._on_health_changed,
        }

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Opens the HTTP client and starts the polling task."""
        if not self.settings.event_queue_url:
            raise ValueError("event_queue_url is not configured")
        if self.running:
            return
        self.http = httpx.AsyncClient(
            timeout=self.settings.http_timeout / 1000.0,
            headers={"User-Agent": self.settings.USER_AGENT},
        )
        self._task = asyncio.create_task(self._event_loop(), name="event-queue-feed")
        logger.info(f"EventQueueFeed started on {self.settings.event_queue_url}.")

    async def stop(self) -> None:
        """Stops polling and closes the HTTP client."""
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self.http is not None:
            await self.http.aclose()
            self.http = None
        logger.info(f"EventQueueFeed stopped after {self.events_applied} event(s).")

    async def poll_once(self) -> int:
        """Fetches one batch of events and applies it. Returns the number of events received."""
        if self.http is None:
            raise RuntimeError("EventQueueFeed is not started")
        resp = await self.http.get(self.settings.event_queue_url)
        resp.raise_for_status()
        events = resp.json().get("events", [])
        for ev in events:
            self.handle_event(ev)
        return len(events)

    async def _event_loop(self) -> None:
        interval = self.settings.event_queue_poll_interval / 1000.0
        while True:
            try:
                received = await self.poll_once()
                await asyncio.sleep(0 if received else interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Event queue poll failed: {e}")
                await asyncio.sleep(interval)

    def handle_event(self, event: Dict[str, Any]) -> bool:
        """Applies one event to the World. Returns False if it was skipped."""
        try:
            kind = FeedEventType(event.get("event"))
        except ValueError:
            logger.warning(f"EventQueueFeed: unknown event {event.get('event')!r}, skipped.")
            return False
        applied = self._dispatch[kind](event)
        if applied:
            self.events_applied += 1
        return applied

    def _agent_for(self, event: Dict[str, Any]) -> Optional[Agent]:
        agent = self.world.get_agent(parse_agent_id(event.get("id")))
        if agent is None:
            logger.warning(f"EventQueueFeed: {event.get('event')} for unknown agent {event.get('id')!r}.")
        return agent

    def _on_agent_joined(self, event: Dict[str, Any]) -> bool:
        agent = Agent(agent_id=parse_agent_id(event.get("id")), name=str(event.get("name", "")))
        self.world.add_agent(agent, local=bool(event.get("local", False)))
        return True

    def _on_agent_left(self, event: Dict[str, Any]) -> bool:
        agent = self._agent_for(event)
        if agent is None: return False
        self.world.remove_agent(agent)
        return True

    def _on_avatar_attached(self, event: Dict[str, Any]) -> bool:
        agent = self._agent_for(event)
        if agent is None: return False
        avatar = AvatarModel.build_default(str(event.get("avatar_name") or f"{agent.name or agent.agent_id}-avatar"))
        self.world.attach_avatar(agent, avatar, place=bool(event.get("placed", True)))
        return True

    def _on_avatar_placed(self, event: Dict[str, Any]) -> bool:
        agent = self._agent_for(event)
        if agent is None or agent.avatar is None: return False
        self.world.place_avatar(agent.avatar)
        return True

    def _on_avatar_detached(self, event: Dict[str, Any]) -> bool:
        agent = self._agent_for(event)
        if agent is None or agent.avatar is None: return False
        self.world.detach_avatar(agent)
        return True

    def _on_health_changed(self, event: Dict[str, Any]) -> bool:
        agent = self._agent_for(event)
        if agent is None or agent.avatar is None: return False
        humanoid = agent.avatar.find_first_child(self.settings.HUMANOID_NAME)
        if humanoid is None:
            logger.warning(f"EventQueueFeed: {agent} has no {self.settings.HUMANOID_NAME}.")
            return False
        humanoid.set_health(float(event.get("health", 0)))
        return True
