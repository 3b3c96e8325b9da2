import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List

LOGGER = logging.getLogger(__name__)

Subscriber = Callable[[str, Dict[str, Any]], Awaitable[None]]


class ChangeBroadcaster:
    """In-process publish/subscribe channel for committed IPO changes.

    Callers can use this to push updates to websockets or other listeners.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._sub_lock = asyncio.Lock()

    async def subscribe(self, callback: Subscriber) -> None:
        """Register an async callback(event_name, payload) for every published event."""
        async with self._sub_lock:
            self._subscribers.append(callback)

    async def unsubscribe(self, callback: Subscriber) -> None:
        async with self._sub_lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        async with self._sub_lock:
            # copy to avoid mutation while iterating
            subs = list(self._subscribers)
        for cb in subs:
            try:
                await cb(event_name, payload)
            except Exception:
                # one broken listener must not starve the others
                LOGGER.exception("Subscriber %r failed for %s", cb, event_name)
