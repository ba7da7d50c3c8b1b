"""In-memory scene graph satisfying the avatar collaborator interface.

The tracker only relies on duck-typed avatar handles: ``is_in_world()``,
``find_first_child(name)`` and ``await wait_for_child(name, timeout_ms)``, a
Humanoid child exposing ``health`` and health-changed handler registration,
and an Animator exposing ``load_animation(clip)``. This module provides a
small implementation of that surface plus a World that raises the agent and
avatar feeds consumed by TrackerRegistry.
"""
import asyncio
import dataclasses
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from pyavatartracker.exceptions import PartNotFound
from pyavatartracker.types.enums import AnimationPriority

logger = logging.getLogger(__name__)

HealthChangedHandler = Callable[[float], None]
AgentHandler = Callable[['Agent'], None]
AvatarHandler = Callable[['Agent', 'AvatarModel'], None]


class Instance:
    is_world_root: bool = False

    def __init__(self, name: str):
        self.name = name
        self.parent: Optional['Instance'] = None
        self.children: List['Instance'] = []
        self._child_waiters: Dict[str, List[asyncio.Future]] = {}

    def add_child(self, child: 'Instance') -> 'Instance':
        if child.parent is not None:
            child.parent.remove_child(child)
        child.parent = self
        self.children.append(child)
        for fut in self._child_waiters.pop(child.name, []):
            if not fut.done():
                fut.set_result(child)
        return child

    def remove_child(self, child: 'Instance'):
        if child in self.children:
            self.children.remove(child)
            child.parent = None

    def find_first_child(self, name: str) -> Optional['Instance']:
        for child in self.children:
            if child.name == name:
                return child
        return None

    async def wait_for_child(self, name: str, timeout_ms: float | None = None) -> 'Instance':
        """Returns the named child, waiting for it to be added if needed."""
        child = self.find_first_child(name)
        if child is not None:
            return child
        fut = asyncio.get_running_loop().create_future()
        self._child_waiters.setdefault(name, []).append(fut)
        try:
            if timeout_ms is None:
                return await fut
            return await asyncio.wait_for(fut, timeout=timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            raise PartNotFound(self.name, name) from None
        finally:
            waiters = self._child_waiters.get(name)
            if waiters and fut in waiters:
                waiters.remove(fut)
                if not waiters:
                    del self._child_waiters[name]

    def is_descendant_of(self, other: 'Instance') -> bool:
        node = self.parent
        while node is not None:
            if node is other:
                return True
            node = node.parent
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class Part(Instance):
    def __init__(self, name: str, position: Tuple[float, float, float] = (0.0, 0.0, 0.0)):
        super().__init__(name)
        self.position = position


class Humanoid(Instance):
    def __init__(self, name: str = "Humanoid", max_health: float = 100.0):
        super().__init__(name)
        self.max_health = max_health
        self.health = max_health
        self._health_changed_handlers: List[HealthChangedHandler] = []

    def register_health_changed_handler(self, cb: HealthChangedHandler): self._health_changed_handlers.append(cb)
    def unregister_health_changed_handler(self, cb: HealthChangedHandler):
        if cb in self._health_changed_handlers: self._health_changed_handlers.remove(cb)

    def health_handler_count(self) -> int:
        return len(self._health_changed_handlers)

    def set_health(self, value: float):
        self.health = max(0.0, min(float(value), self.max_health))
        for h in list(self._health_changed_handlers):
            try: h(self.health)
            except Exception as e: logger.error(f"Err in health_changed_handler: {e}")

    def take_damage(self, amount: float):
        self.set_health(self.health - amount)


@dataclasses.dataclass
class AnimationTrack:
    """A clip loaded on an Animator. Properties may be assigned after loading."""
    animation: Any
    looped: bool = False
    priority: AnimationPriority = AnimationPriority.CORE
    speed: float = 1.0
    weight: float = 1.0
    is_playing: bool = False

    def play(self, weight: float | None = None, speed: float | None = None):
        if weight is not None: self.weight = weight
        if speed is not None: self.speed = speed
        self.is_playing = True

    def stop(self):
        self.is_playing = False


class Animator(Instance):
    def __init__(self, name: str = "Animator"):
        super().__init__(name)
        self.loaded_tracks: List[AnimationTrack] = []

    def load_animation(self, clip: Any) -> AnimationTrack:
        track = AnimationTrack(animation=clip)
        self.loaded_tracks.append(track)
        return track


class AvatarModel(Instance):
    def is_in_world(self) -> bool:
        node = self.parent
        while node is not None:
            if node.is_world_root:
                return True
            node = node.parent
        return False

    @classmethod
    def build_default(cls, name: str, with_animator: bool = True) -> 'AvatarModel':
        """Creates an avatar with the standard Humanoid, Animator and HumanoidRootPart layout."""
        model = cls(name)
        humanoid = model.add_child(Humanoid())
        if with_animator:
            humanoid.add_child(Animator())
        model.add_child(Part("HumanoidRootPart"))
        return model


@dataclasses.dataclass(eq=False)
class Agent:
    """An externally managed participant. Hashed by identity."""
    agent_id: uuid.UUID = dataclasses.field(default_factory=uuid.uuid4)
    name: str = ""
    avatar: Optional[AvatarModel] = None

    def __str__(self) -> str:
        return f"Agent({self.name or self.agent_id})"


class World:
    def __init__(self):
        self.workspace = Instance("Workspace")
        self.workspace.is_world_root = True
        self.agents: Dict[uuid.UUID, Agent] = {}
        self.local_agent: Optional[Agent] = None
        self._agent_joined_handlers: List[AgentHandler] = []
        self._agent_left_handlers: List[AgentHandler] = []
        self._avatar_attached_handlers: List[AvatarHandler] = []
        self._avatar_detached_handlers: List[AvatarHandler] = []

    def register_agent_joined_handler(self, cb: AgentHandler): self._agent_joined_handlers.append(cb)
    def unregister_agent_joined_handler(self, cb: AgentHandler): self._agent_joined_handlers.remove(cb)
    def register_agent_left_handler(self, cb: AgentHandler): self._agent_left_handlers.append(cb)
    def unregister_agent_left_handler(self, cb: AgentHandler): self._agent_left_handlers.remove(cb)
    def register_avatar_attached_handler(self, cb: AvatarHandler): self._avatar_attached_handlers.append(cb)
    def unregister_avatar_attached_handler(self, cb: AvatarHandler): self._avatar_attached_handlers.remove(cb)
    def register_avatar_detached_handler(self, cb: AvatarHandler): self._avatar_detached_handlers.append(cb)
    def unregister_avatar_detached_handler(self, cb: AvatarHandler): self._avatar_detached_handlers.remove(cb)

    def _fire(self, handlers: list, kind: str, *args):
        for h in list(handlers):
            try: h(*args)
            except Exception as e: logger.error(f"Err in {kind}_handler: {e}")

    def get_agents(self) -> List[Agent]:
        return list(self.agents.values())

    def get_agent(self, agent_id: uuid.UUID) -> Optional[Agent]:
        return self.agents.get(agent_id)

    def add_agent(self, agent: Agent, local: bool = False) -> Agent:
        existing = self.agents.get(agent.agent_id)
        if existing is not None:
            logger.debug(f"World: {existing} already present.")
            return existing
        self.agents[agent.agent_id] = agent
        if local:
            self.local_agent = agent
        logger.info(f"World: {agent} joined{' (local)' if local else ''}.")
        self._fire(self._agent_joined_handlers, "agent_joined", agent)
        return agent

    def remove_agent(self, agent: Agent):
        if self.agents.get(agent.agent_id) is not agent:
            return
        if agent.avatar is not None:
            self.detach_avatar(agent)
        del self.agents[agent.agent_id]
        if self.local_agent is agent:
            self.local_agent = None
        logger.info(f"World: {agent} left.")
        self._fire(self._agent_left_handlers, "agent_left", agent)

    def attach_avatar(self, agent: Agent, avatar: AvatarModel, place: bool = True):
        """Attaches ``avatar`` to ``agent``, detaching any previous one first."""
        if agent.avatar is avatar:
            return
        if agent.avatar is not None:
            self.detach_avatar(agent)
        agent.avatar = avatar
        self._fire(self._avatar_attached_handlers, "avatar_attached", agent, avatar)
        if place:
            self.place_avatar(avatar)

    def place_avatar(self, avatar: AvatarModel):
        self.workspace.add_child(avatar)

    def detach_avatar(self, agent: Agent):
        avatar = agent.avatar
        if avatar is None:
            return
        self._fire(self._avatar_detached_handlers, "avatar_detached", agent, avatar)
        if avatar.parent is not None:
            avatar.parent.remove_child(avatar)
        agent.avatar = None
