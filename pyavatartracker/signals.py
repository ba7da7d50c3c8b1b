"""Non-queuing broadcast signals.

A Signal delivers each fire to the handlers registered at that moment and to
the coroutines currently suspended in ``wait()``. Nothing is buffered: a waiter
that starts waiting after a fire does not see it, it sees the next one.
"""
import asyncio
import logging
from typing import Any, Callable, List

from pyavatartracker.exceptions import LifecycleEnded

logger = logging.getLogger(__name__)

SignalHandler = Callable[..., None]


class Signal:
    def __init__(self, name: str, owner: Any = None):
        self.name = name
        self.owner = owner
        self._handlers: List[SignalHandler] = []
        self._waiters: List[asyncio.Future] = []
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def register_handler(self, cb: SignalHandler):
        if self._destroyed:
            logger.warning(f"Signal '{self.name}': handler registered after destroy, ignored.")
            return
        self._handlers.append(cb)

    def unregister_handler(self, cb: SignalHandler):
        if cb in self._handlers:
            self._handlers.remove(cb)

    def handler_count(self) -> int:
        return len(self._handlers)

    def waiter_count(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    def fire(self, *args: Any) -> None:
        """Dispatches to current handlers and wakes current waiters."""
        if self._destroyed:
            return
        waiters, self._waiters = self._waiters, []
        value = args[0] if len(args) == 1 else args
        for w in waiters:
            if not w.done():
                w.set_result(value)
        for h in list(self._handlers):
            try:
                h(*args)
            except Exception as e:
                logger.error(f"Err in '{self.name}' handler: {e}")
        logger.debug(f"Signal '{self.name}' fired to {len(self._handlers)} handler(s), {len(waiters)} waiter(s).")

    async def wait(self) -> Any:
        """Suspends until the next fire. Raises LifecycleEnded if the signal is destroyed."""
        if self._destroyed:
            raise LifecycleEnded(self.owner, f"signal '{self.name}' destroyed")
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            return await fut
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)

    def destroy(self) -> None:
        """Releases all handlers and fails all pending waiters. Idempotent."""
        if self._destroyed:
            return
        self._destroyed = True
        waiters, self._waiters = self._waiters, []
        for w in waiters:
            if not w.done():
                w.set_exception(LifecycleEnded(self.owner, f"signal '{self.name}' destroyed"))
        self._handlers.clear()

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, handlers={len(self._handlers)}, waiters={self.waiter_count()})"
