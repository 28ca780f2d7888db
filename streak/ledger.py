"""
Visit Ledger - turns navigation URLs into per-day visit facts.

A site's visit-day set holds at most one day-key per calendar day; the
last-visit map always advances to the latest match.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from streak.days import day_key, to_epoch_ms
from streak.matcher import matches
from streak.schemas import Badge, TrackedSite

VISITED_BADGE = Badge(state="visited", text="X", color="#D93025", title="Visited a tracked site today")
CLEAN_BADGE = Badge(state="clean", text="OK", color="#188038", title="Clean today")


@dataclass
class VisitRecord:
    """Outcome of matching one navigation against the tracked sites."""
    day: str
    matched: List[str] = field(default_factory=list)
    recorded: List[str] = field(default_factory=list)  # sites whose day-set gained today's key
    visits: Dict[str, Set[str]] = field(default_factory=dict)
    last_visits: Dict[str, int] = field(default_factory=dict)

    @property
    def did_record(self) -> bool:
        return bool(self.recorded)


def record_visit(
    sites: Iterable[TrackedSite],
    visits: Dict[str, Set[str]],
    last_visits: Dict[str, int],
    url: str,
    now: Optional[datetime] = None,
) -> VisitRecord:
    """Apply one navigation to copies of the ledger maps."""
    now = now or datetime.now()
    today = day_key(now)
    now_ms = to_epoch_ms(now)

    record = VisitRecord(
        day=today,
        visits={k: set(v) for k, v in visits.items()},
        last_visits=dict(last_visits),
    )

    for site in sites:
        if not matches(url, site.pattern, site.is_regex):
            continue
        record.matched.append(site.id)
        days = record.visits.setdefault(site.id, set())
        if today not in days:
            days.add(today)
            record.recorded.append(site.id)
        record.last_visits[site.id] = now_ms

    return record


def visited_on(sites: Iterable[TrackedSite], visits: Dict[str, Set[str]], key: str) -> bool:
    return any(key in visits.get(site.id, ()) for site in sites)


def compute_badge(
    sites: Iterable[TrackedSite],
    visits: Dict[str, Set[str]],
    now: Optional[datetime] = None,
) -> Badge:
    """Badge is a pure function of the ledger; recompute it, never patch it."""
    if visited_on(sites, visits, day_key(now)):
        return VISITED_BADGE
    return CLEAN_BADGE


def purge_site(site_id: str, visits: Dict[str, Set[str]], last_visits: Dict[str, int]):
    visits.pop(site_id, None)
    last_visits.pop(site_id, None)
