import logging
from typing import Any, Dict, Optional

from pyavatartracker.exceptions import LifecycleEnded
from pyavatartracker.signals import Signal
from pyavatartracker.types.enums import TrackerStatus
from .avatar_initializer import AvatarInitializer
from .settings import Settings

logger = logging.getLogger(__name__)


class AgentTracker:
    """
    Alive/dead view of one agent's avatar.

    Status starts DEAD and becomes ALIVE only when an AvatarInitializer for the
    most recently attached avatar promotes itself. ``on_died`` and
    ``on_spawned`` fire only on a real status change and are non-queuing: a
    coroutine that was not waiting when one fired does not see it.

    All mutation happens on the event loop thread, so no locking is used.
    """

    def __init__(self, agent: Any, settings: Optional[Settings] = None, avatar: Any = None):
        self.agent = agent
        self.settings = settings or Settings()
        self._is_dead: bool = True
        self._destroyed: bool = False
        self._avatar: Optional[AvatarInitializer] = None
        self._pending: Optional[AvatarInitializer] = None
        self.on_died = Signal("died", owner=agent)
        self.on_spawned = Signal("spawned", owner=agent)
        logger.info(f"AgentTracker created for {agent}.")
        if avatar is not None:
            self.on_avatar_attached(avatar)

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else self.status.name
        return f"AgentTracker({self.agent}, {state})"

    # --- status ------------------------------------------------------------

    def is_dead(self) -> bool:
        return self._is_dead

    @property
    def status(self) -> TrackerStatus:
        return TrackerStatus.from_dead_flag(self._is_dead)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def current_avatar(self) -> Optional[AvatarInitializer]:
        return self._avatar

    @property
    def pending_initializer(self) -> Optional[AvatarInitializer]:
        return self._pending

    def set_dead_status(self, dead: bool):
        """Sets the status and fires the matching signal. Same status twice is a no-op."""
        if self._destroyed or self._is_dead == dead:
            return
        self._is_dead = dead
        log = logger.info if self.settings.log_status_changes else logger.debug
        log(f"[{self.agent}] status -> {self.status.name}")
        if dead:
            self.on_died.fire()
        else:
            self.on_spawned.fire()

    # --- non-blocking lookups ----------------------------------------------

    def get_avatar(self) -> Any:
        return self._avatar.handle if self._avatar is not None else None

    def get_humanoid(self) -> Any:
        return self._avatar.get_humanoid() if self._avatar is not None else None

    def get_root_part(self) -> Any:
        return self._avatar.get_root_part() if self._avatar is not None else None

    def get_animator(self) -> Any:
        return self._avatar.get_animator() if self._avatar is not None else None

    def try_load_animation(self, clip: Any, properties: Optional[Dict[str, Any]] = None) -> Any:
        """Loads ``clip`` on the current animator and assigns ``properties`` to the track. None if no animator."""
        animator = self.get_animator()
        if animator is None:
            return None
        track = animator.load_animation(clip)
        for name, value in (properties or {}).items():
            if not hasattr(track, name):
                logger.warning(f"[{self.agent}] AnimationTrack has no property '{name}', skipped.")
                continue
            setattr(track, name, value)
        return track

    # --- awaits ------------------------------------------------------------

    async def _wait_until_ready(self, accept_dead: bool) -> AvatarInitializer:
        while True:
            if self._destroyed:
                raise LifecycleEnded(self.agent)
            avatar = self._avatar
            if avatar is not None and (not self._is_dead or accept_dead):
                return avatar
            await self.on_spawned.wait()

    async def await_ready(self, accept_dead: bool = False) -> Any:
        """
        Returns the current avatar handle once it is usable.

        Returns immediately if there is a current avatar that is alive, or dead
        with ``accept_dead``. Otherwise waits for the next spawn. Raises
        LifecycleEnded if the tracker is destroyed before that happens. There is
        no built-in timeout; wrap the call in ``asyncio.wait_for`` if needed.
        """
        return (await self._wait_until_ready(accept_dead)).handle

    async def await_avatar(self, accept_dead: bool = False) -> Any:
        return await self.await_ready(accept_dead)

    async def await_humanoid(self, accept_dead: bool = False) -> Any:
        return (await self._wait_until_ready(accept_dead)).get_humanoid()

    async def await_root_part(self, accept_dead: bool = False) -> Any:
        return (await self._wait_until_ready(accept_dead)).get_root_part()

    async def await_animator(self, accept_dead: bool = False) -> Any:
        return (await self._wait_until_ready(accept_dead)).get_animator()

    async def await_and_load_animation(self, clip: Any, properties: Optional[Dict[str, Any]] = None,
                                       accept_dead: bool = False) -> Any:
        await self._wait_until_ready(accept_dead)
        return self.try_load_animation(clip, properties)

    # --- avatar feed -------------------------------------------------------

    def _owns_handle(self, handle: Any) -> bool:
        return ((self._avatar is not None and self._avatar.handle is handle) or
                (self._pending is not None and self._pending.handle is handle))

    def _clear_pending(self):
        pending, self._pending = self._pending, None
        if pending is not None:
            logger.debug(f"[{self.agent}] abandoning {pending!r}.")
            pending.abandon()

    def on_avatar_attached(self, handle: Any):
        if self._destroyed:
            logger.warning(f"[{self.agent}] avatar attached after tracker destroyed, ignored.")
            return
        if self._owns_handle(handle):
            logger.debug(f"[{self.agent}] duplicate attach for {getattr(handle, 'name', handle)!r}, ignored.")
            return
        self._clear_pending()
        self._pending = AvatarInitializer(handle, self, self.settings)
        self._pending.start()

    def on_avatar_detached(self, handle: Any = None):
        """Drops pending and current avatars. A ``handle`` that is neither is treated as stale."""
        if self._destroyed:
            return
        if handle is not None and not self._owns_handle(handle):
            logger.debug(f"[{self.agent}] stale detach for {getattr(handle, 'name', handle)!r}, ignored.")
            return
        self._clear_pending()
        avatar, self._avatar = self._avatar, None
        if avatar is not None:
            avatar.destroy(report_dead=True)
        self.set_dead_status(True)

    # --- initializer callbacks ---------------------------------------------

    def promote_initializer(self, initializer: AvatarInitializer) -> bool:
        if self._destroyed or initializer is not self._pending or initializer.abandoned:
            logger.debug(f"[{self.agent}] stale promotion of {initializer!r} ignored.")
            return False
        self._pending = None
        previous, self._avatar = self._avatar, initializer
        if previous is not None:
            previous.destroy(report_dead=False)
        if initializer.reported_dead:
            logger.debug(f"[{self.agent}] {initializer.name} promoted already dead.")
            return True
        self.set_dead_status(False)
        return True

    def on_avatar_died(self, initializer: AvatarInitializer):
        if initializer is self._avatar or initializer is self._pending:
            self.set_dead_status(True)

    def on_initializer_failed(self, initializer: AvatarInitializer):
        if initializer is self._pending:
            self._pending = None

    # --- teardown ----------------------------------------------------------

    def destroy(self):
        """Cancels pending work, destroys the current avatar and releases both signals. Idempotent."""
        if self._destroyed:
            return
        self._clear_pending()
        avatar, self._avatar = self._avatar, None
        if avatar is not None:
            avatar.destroy(report_dead=True)
        self.set_dead_status(True)
        self._destroyed = True
        self.on_died.destroy()
        self.on_spawned.destroy()
        logger.info(f"AgentTracker destroyed for {self.agent}.")
