"""Test doubles shared by the test modules."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Tuple

from streak.store import MemoryStore


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeScheduler:
    """Records alarms instead of arming real timers; fire() delivers one by hand."""

    def __init__(self):
        self.scheduled: Dict[str, int] = {}
        self.history: List[Tuple[str, int]] = []
        self.cancelled: List[str] = []
        self._listeners = []
        self.initialized = False

    def initialize(self):
        self.initialized = True

    def shutdown(self):
        self.initialized = False

    def add_listener(self, listener):
        self._listeners.append(listener)

    def schedule_once(self, name: str, when_ms: int):
        self.scheduled[name] = when_ms
        self.history.append((name, when_ms))

    def cancel(self, name: str):
        self.scheduled.pop(name, None)
        self.cancelled.append(name)

    def list_alarms(self):
        return [{"name": k, "when_ms": v} for k, v in self.scheduled.items()]

    def fire(self, name: str):
        self.scheduled.pop(name, None)
        for listener in list(self._listeners):
            listener(name)


class RecordingStore(MemoryStore):
    """MemoryStore that keeps every set() mapping for inspection."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.writes: List[Dict[str, Any]] = []

    async def set(self, mapping):
        self.writes.append(dict(mapping))
        await super().set(mapping)


class FailingRuleEngine:
    async def list_current_rules(self):
        raise RuntimeError("engine unavailable")

    async def update_rules(self, remove_ids, add_rules):
        raise RuntimeError("engine unavailable")
