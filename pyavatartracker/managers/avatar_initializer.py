import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional

from pyavatartracker.exceptions import PartNotFound
from pyavatartracker.types.enums import InitializerPhase
from .settings import Settings

if TYPE_CHECKING:
    from .agent_tracker import AgentTracker

logger = logging.getLogger(__name__)


class AvatarInitializer:
    """
    Drives one attached avatar to a usable state and then hands itself to its
    owning AgentTracker, or is abandoned on the way.

    Once promoted the same object is the tracker's current avatar: it keeps the
    resolved parts and the health subscription until it is destroyed.

    Every await in ``initialize`` is followed by an ABANDONED check so that an
    initializer superseded while suspended never promotes itself or fires a
    status change.
    """

    def __init__(self, handle: Any, tracker: 'AgentTracker', settings: Optional[Settings] = None):
        self.handle = handle
        self.tracker = tracker
        self.settings = settings or tracker.settings
        self.name: str = getattr(handle, "name", repr(handle))
        self.phase: InitializerPhase = InitializerPhase.STARTING
        self.reported_dead: bool = False
        self._humanoid: Any = None
        self._root_part: Any = None
        self._animator: Any = None
        self._subscribed_humanoid: Any = None
        self._task: asyncio.Task | None = None
        self._destroyed: bool = False

    def __repr__(self) -> str:
        return f"AvatarInitializer({self.name!r}, phase={self.phase.name})"

    @property
    def abandoned(self) -> bool:
        return self.phase is InitializerPhase.ABANDONED

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def _set_phase(self, phase: InitializerPhase):
        logger.debug(f"[{self.tracker.agent}] {self.name}: {self.phase.name} -> {phase.name}")
        self.phase = phase

    # --- parts -------------------------------------------------------------

    def _resolve(self, parent: Any, name: str) -> Any:
        if parent is None or self.abandoned or self._destroyed:
            return None
        return parent.find_first_child(name)

    def get_humanoid(self) -> Any:
        if self._humanoid is None:
            self._humanoid = self._resolve(self.handle, self.settings.HUMANOID_NAME)
        return self._humanoid

    def get_root_part(self) -> Any:
        if self._root_part is None:
            self._root_part = self._resolve(self.handle, self.settings.ROOT_PART_NAME)
        return self._root_part

    def get_animator(self) -> Any:
        if self._animator is None:
            self._animator = self._resolve(self.get_humanoid(), self.settings.ANIMATOR_NAME)
        return self._animator

    # --- lifecycle ---------------------------------------------------------

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.initialize(), name=f"avatar-init:{self.name}")
        return self._task

    async def initialize(self) -> bool:
        """Runs the placement, part resolution and settle steps. Returns True if promoted."""
        try:
            while not self.handle.is_in_world():
                await asyncio.sleep(self.settings.placement_poll_seconds)
                if self.abandoned: return False
            self._set_phase(InitializerPhase.LOCATING_PARTS)

            humanoid = await self.handle.wait_for_child(self.settings.HUMANOID_NAME, self.settings.part_wait_timeout)
            if self.abandoned: return False
            self._humanoid = humanoid
            humanoid.register_health_changed_handler(self._on_health_changed)
            self._subscribed_humanoid = humanoid
            if getattr(humanoid, "health", 1) <= 0:
                self._on_health_changed(humanoid.health)
                if self.abandoned or self._destroyed: return False

            root_part = await self.handle.wait_for_child(self.settings.ROOT_PART_NAME, self.settings.part_wait_timeout)
            if self.abandoned: return False
            self._root_part = root_part

            animator = await humanoid.wait_for_child(self.settings.ANIMATOR_NAME, self.settings.part_wait_timeout)
            if self.abandoned: return False
            self._animator = animator

            await asyncio.sleep(self.settings.settle_delay_seconds)
            if self.abandoned: return False

            self._set_phase(InitializerPhase.READY)
            if self.tracker.promote_initializer(self):
                return True
            self.destroy(report_dead=False)
            return False
        except PartNotFound as e:
            if self.abandoned: return False
            logger.warning(f"[{self.tracker.agent}] {self.name}: {e}; giving up on this avatar.")
            self.abandon()
            self.tracker.on_initializer_failed(self)
            return False
        except asyncio.CancelledError:
            logger.debug(f"[{self.tracker.agent}] {self.name}: initialization cancelled in {self.phase.name}.")
            raise

    def abandon(self):
        """Stops a not-yet-promoted initializer and releases everything it holds. Idempotent."""
        if self.abandoned or self._destroyed:
            return
        if self.phase is InitializerPhase.READY:
            logger.debug(f"[{self.tracker.agent}] {self.name}: abandon() on a promoted avatar ignored, its tracker owns teardown.")
            return
        self._set_phase(InitializerPhase.ABANDONED)
        self._cancel_task()
        self._unsubscribe()
        self._humanoid = self._root_part = self._animator = None
        self.handle = None

    def destroy(self, report_dead: bool = True):
        """
        Tears down this avatar: cancels outstanding work and drops the health
        subscription. With ``report_dead`` the owner is forced to DEAD, which is
        what detaching the current avatar or destroying the tracker requires.
        """
        if self._destroyed:
            return
        self._destroyed = True
        self._cancel_task()
        self._unsubscribe()
        logger.debug(f"[{self.tracker.agent}] {self.name}: destroyed (report_dead={report_dead}).")
        if report_dead:
            self.tracker.set_dead_status(True)

    def _cancel_task(self):
        task = self._task
        if task is not None and not task.done():
            try: current = asyncio.current_task()
            except RuntimeError: current = None
            if task is not current:
                task.cancel()

    def _unsubscribe(self):
        humanoid, self._subscribed_humanoid = self._subscribed_humanoid, None
        if humanoid is not None:
            humanoid.unregister_health_changed_handler(self._on_health_changed)

    def _on_health_changed(self, health: float):
        if self.abandoned or self._destroyed or self.reported_dead:
            return
        if health > 0:
            return
        self.reported_dead = True
        logger.debug(f"[{self.tracker.agent}] {self.name}: health reached {health}.")
        self.tracker.on_avatar_died(self)
