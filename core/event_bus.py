import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime
from collections import deque
import weakref

logger = logging.getLogger("event_bus")


class EventBus:
    """In-process fan-out of domain events (badge, rules, allowance, visit) to asyncio queues."""

    def __init__(self, history_size: int = 100):
        self._subscribers = {}
        self._history = deque(maxlen=history_size)

    async def publish(self, event_type: str, source: str, data: Dict[str, Any]):
        event = {
            "timestamp": datetime.now().isoformat(),
            "type": event_type,
            "source": source,
            "data": data,
        }

        self._history.append(event)

        dead = []

        for ref, types in list(self._subscribers.items()):
            q = ref()
            if q is None:
                dead.append(ref)
                continue
            if types and event_type not in types:
                continue

            try:
                q.put_nowait(event)  # Non-blocking
            except asyncio.QueueFull:
                logger.warning("Dropping event due to full subscriber queue")

        # Cleanup dead references
        for ref in dead:
            self._subscribers.pop(ref, None)

    async def subscribe(self, max_queue_size: int = 100, types: Optional[Iterable[str]] = None, replay: int = 5):
        q = asyncio.Queue(maxsize=max_queue_size)
        wanted = frozenset(types or ())
        self._subscribers[weakref.ref(q)] = wanted

        for event in self.recent(replay, wanted):
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                break

        return q

    def unsubscribe(self, q: asyncio.Queue):
        for ref in list(self._subscribers):
            if ref() is q:
                self._subscribers.pop(ref, None)

    def recent(self, limit: int = 20, types: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        wanted = frozenset(types or ())
        events = [e for e in self._history if not wanted or e["type"] in wanted]
        return events[-limit:] if limit > 0 else []


event_bus = EventBus()
