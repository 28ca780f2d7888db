"""
Streak Store - persistent key-value state.

KeyValueStore is the async get/set interface with change notifications.
StreakRepository sits on top of it and turns raw JSON values into typed
state, treating anything malformed as absent.
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from streak.days import parse_day_key
from streak.schemas import JournalEntry, TrackedSite

logger = logging.getLogger("store")

# Persisted keys
TRACKED_SITES = "tracked_sites"
VISITS = "visits_by_site_id"
LAST_VISITS = "last_visit_at_by_site_id"
ALLOWANCES = "allow_until_by_site_id"
MOTIVATIONS = "motivations"
JOURNAL = "journal"

ALL_KEYS = [TRACKED_SITES, VISITS, LAST_VISITS, ALLOWANCES, MOTIVATIONS, JOURNAL]

ChangeListener = Callable[[List[str], str], None]


class KeyValueStore(ABC):
    """Async key-value store. Each set() is applied at once; no cross-call transactions."""

    area = "local"

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    @abstractmethod
    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def set(self, mapping: Dict[str, Any]) -> None:
        ...

    def add_listener(self, listener: ChangeListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, changed_keys: List[str]):
        for listener in list(self._listeners):
            try:
                listener(changed_keys, self.area)
            except Exception as e:
                logger.error(f"Store listener failed: {e}")


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {k: copy.deepcopy(self.data[k]) for k in keys if k in self.data}

    async def set(self, mapping: Dict[str, Any]) -> None:
        if not mapping:
            return
        for key, value in mapping.items():
            self.data[key] = copy.deepcopy(value)
        self._notify(list(mapping.keys()))


class JsonFileStore(MemoryStore):
    """Whole-store JSON file, rewritten on every set()."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Dict[str, Any]:
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text())
                if isinstance(data, dict):
                    return data
                logger.warning(f"Ignoring non-object store file {self.path}")
            except Exception as e:
                logger.warning(f"Failed to load store file {self.path}: {e}")
        return {}

    async def set(self, mapping: Dict[str, Any]) -> None:
        if not mapping:
            return
        updated = dict(self.data)
        for key, value in mapping.items():
            updated[key] = copy.deepcopy(value)
        self._save(updated)
        self.data = updated
        self._notify(list(mapping.keys()))

    def _save(self, data: Dict[str, Any]):
        """Atomically replace the store file using temp file + rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(data, indent=2))
            tmp_path.replace(self.path)
        except Exception as e:
            logger.error(f"❌ Store save failed, keeping previous contents of {self.path}: {e}")
            if tmp_path.exists():
                tmp_path.unlink()
            raise

    def clear(self):
        self.data = {}
        if self.path.exists():
            self.path.unlink()


# === Typed state ===

@dataclass
class StreakState:
    sites: List[TrackedSite] = field(default_factory=list)
    visits: Dict[str, Set[str]] = field(default_factory=dict)
    last_visits: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[str, int] = field(default_factory=dict)
    motivations: List[str] = field(default_factory=list)
    journal: List[JournalEntry] = field(default_factory=list)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_sites(raw: Any) -> List[TrackedSite]:
    if not isinstance(raw, list):
        return []
    sites = []
    for entry in raw:
        try:
            sites.append(TrackedSite.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed tracked site {entry!r}: {e.error_count()} errors")
    return sites


def parse_visits(raw: Any) -> Dict[str, Set[str]]:
    if not isinstance(raw, dict):
        return {}
    visits = {}
    for site_id, days in raw.items():
        if not isinstance(days, list):
            continue
        visits[site_id] = {d for d in days if isinstance(d, str) and parse_day_key(d)}
    return visits


def parse_instants(raw: Any) -> Dict[str, int]:
    if not isinstance(raw, dict):
        return {}
    return {k: int(v) for k, v in raw.items() if _is_number(v)}


def parse_motivations(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [m for m in raw if isinstance(m, str)]


def parse_journal(raw: Any) -> List[JournalEntry]:
    if not isinstance(raw, list):
        return []
    entries = []
    for item in raw:
        try:
            entries.append(JournalEntry.model_validate(item))
        except ValidationError:
            logger.warning(f"Skipping malformed journal entry {item!r}")
    return entries


_PARSERS = {
    TRACKED_SITES: ("sites", parse_sites),
    VISITS: ("visits", parse_visits),
    LAST_VISITS: ("last_visits", parse_instants),
    ALLOWANCES: ("allowances", parse_instants),
    MOTIVATIONS: ("motivations", parse_motivations),
    JOURNAL: ("journal", parse_journal),
}


def dump_sites(sites: List[TrackedSite]) -> List[Dict[str, Any]]:
    return [s.model_dump(mode="json") for s in sites]


def dump_visits(visits: Dict[str, Set[str]]) -> Dict[str, List[str]]:
    return {site_id: sorted(days) for site_id, days in visits.items() if days}


def dump_journal(journal: List[JournalEntry]) -> List[Dict[str, Any]]:
    return [e.model_dump() for e in journal]


class StreakRepository:
    """Typed access to the persisted streak state."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def load(self, *keys: str) -> StreakState:
        """Read the given keys (all keys when none given) in one store call."""
        keys = keys or tuple(ALL_KEYS)
        raw = await self.store.get(keys)
        state = StreakState()
        for key in keys:
            attr, parser = _PARSERS[key]
            setattr(state, attr, parser(raw.get(key)))
        return state

    async def save(
        self,
        sites: Optional[List[TrackedSite]] = None,
        visits: Optional[Dict[str, Set[str]]] = None,
        last_visits: Optional[Dict[str, int]] = None,
        allowances: Optional[Dict[str, int]] = None,
        motivations: Optional[List[str]] = None,
        journal: Optional[List[JournalEntry]] = None,
    ):
        """Write every provided field in a single store call."""
        mapping: Dict[str, Any] = {}
        if sites is not None:
            mapping[TRACKED_SITES] = dump_sites(sites)
        if visits is not None:
            mapping[VISITS] = dump_visits(visits)
        if last_visits is not None:
            mapping[LAST_VISITS] = dict(last_visits)
        if allowances is not None:
            mapping[ALLOWANCES] = dict(allowances)
        if motivations is not None:
            mapping[MOTIVATIONS] = list(motivations)
        if journal is not None:
            mapping[JOURNAL] = dump_journal(journal)
        await self.store.set(mapping)

    async def ensure_initial_data(self, default_sites: Callable[[], List[TrackedSite]]) -> bool:
        """Replace missing or mistyped keys with defaults. Returns True if anything was written.

        Default sites are only seeded when the site list itself is missing or
        not a list; an empty list is a user choice and is kept.
        """
        raw = await self.store.get(ALL_KEYS)
        updates: Dict[str, Any] = {}

        if not isinstance(raw.get(TRACKED_SITES), list):
            updates[TRACKED_SITES] = dump_sites(default_sites())
        for key in (VISITS, LAST_VISITS, ALLOWANCES):
            if not isinstance(raw.get(key), dict):
                updates[key] = {}
        for key in (MOTIVATIONS, JOURNAL):
            if not isinstance(raw.get(key), list):
                updates[key] = []

        if updates:
            logger.info(f"Initializing store keys: {sorted(updates)}")
            await self.store.set(updates)
        return bool(updates)

    async def clear(self):
        await self.store.set({
            TRACKED_SITES: [],
            VISITS: {},
            LAST_VISITS: {},
            ALLOWANCES: {},
        })
