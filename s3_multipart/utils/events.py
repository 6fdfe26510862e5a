import asyncio
import inspect
import logging
from typing import Callable, Dict, List, Set, Tuple

logger = logging.getLogger(__name__)

STATE_CHANGED = "state_changed"
SESSION_CREATED = "session_created"
PART_UPLOADED = "part_uploaded"
UPLOAD_COMPLETE = "upload_complete"
UPLOAD_ABORTED = "upload_aborted"


class EventEmitter:
    """
    Event emitter for upload lifecycle events.

    Deliveries of the same event are serialized, so listeners observe
    part_uploaded notifications in part order. Each event name has its own
    lock: a listener may emit a different event without deadlocking.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._once: Set[Tuple[str, Callable]] = set()
        self._locks: Dict[str, asyncio.Lock] = {}

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        callbacks = self._listeners.setdefault(event_name, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def once(self, event_name: str, callback: Callable):
        """Subscribe for the next delivery only."""
        self.on(event_name, callback)
        self._once.add((event_name, callback))

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        callbacks = self._listeners.get(event_name, [])
        if callback in callbacks:
            callbacks.remove(callback)
        self._once.discard((event_name, callback))

    def listeners(self, event_name: str) -> List[Callable]:
        return list(self._listeners.get(event_name, []))

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners. A failing listener is logged and skipped."""
        callbacks = self.listeners(event_name)
        if not callbacks:
            return

        for callback in callbacks:
            if (event_name, callback) in self._once:
                self.off(event_name, callback)

        # created lazily so the lock binds to the running loop
        lock = self._locks.setdefault(event_name, asyncio.Lock())
        async with lock:
            for callback in callbacks:
                try:
                    if inspect.iscoroutinefunction(callback):
                        await callback(*args, **kwargs)
                    else:
                        callback(*args, **kwargs)
                except Exception as e:
                    name = getattr(callback, "__qualname__", repr(callback))
                    logger.error(f"Listener {name} for {event_name} failed: {e}")
