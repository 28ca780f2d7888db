"""
Streak Calculator - the single source of "days clean" numbers.

Policy: a never-visited site counts its creation day as day 1. Earlier
builds of the popup added a flat bonus to that branch; the bonus survives
only as the NEVER_VISITED_BONUS_DAYS knob (default 0) so it can be turned
back on deliberately through settings.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from streak.days import day_key, from_epoch_ms, iter_day_keys, parse_day_key, to_local, whole_days_between
from streak.schemas import HistoryDay, TrackedSite

NEVER_VISITED_BONUS_DAYS = 0


def created_at_of(site: TrackedSite, now: datetime) -> datetime:
    """Local creation instant; sites without one count as created now."""
    return to_local(site.created_at) if site.created_at else now


def created_today(site: TrackedSite, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now()
    return day_key(created_at_of(site, now)) == day_key(now)


def latest_day(visit_days: Iterable[str]) -> Optional[str]:
    # YYYY-MM-DD keys sort chronologically
    return max(visit_days, default=None)


def compute_current_streak(
    site: TrackedSite,
    visit_days: Set[str],
    now: Optional[datetime] = None,
    never_visited_bonus: int = NEVER_VISITED_BONUS_DAYS,
) -> int:
    now = now or datetime.now()
    if day_key(now) in visit_days:
        return 0

    last = latest_day(visit_days)
    if last is None:
        days = whole_days_between(created_at_of(site, now), now) + 1
        return max(1, days) + never_visited_bonus

    # the day after a slip already counts as day 1
    return max(1, whole_days_between(parse_day_key(last), now))


def compute_overall_streak(
    sites: Iterable[TrackedSite],
    visits: Dict[str, Set[str]],
    now: Optional[datetime] = None,
    never_visited_bonus: int = NEVER_VISITED_BONUS_DAYS,
) -> int:
    """Minimum streak over sites not created today; 0 when none qualify."""
    now = now or datetime.now()
    streaks = [
        compute_current_streak(site, visits.get(site.id, set()), now, never_visited_bonus)
        for site in sites
        if not created_today(site, now)
    ]
    return min(streaks, default=0)


def build_history(
    sites: List[TrackedSite],
    visits: Dict[str, Set[str]],
    now: Optional[datetime] = None,
) -> List[HistoryDay]:
    """Day-by-day status from the earliest site creation day through today."""
    now = now or datetime.now()
    start = min((created_at_of(s, now) for s in sites), default=now)
    visited_days = set().union(*(visits.get(s.id, set()) for s in sites)) if sites else set()
    today = day_key(now)

    history = []
    for key in iter_day_keys(start, now):
        if key == today:
            status = "today"
        elif key in visited_days:
            status = "visited"
        else:
            status = "clean"
        history.append(HistoryDay(day=key, status=status))
    return history


def clean_since(
    sites: List[TrackedSite],
    visits: Dict[str, Set[str]],
    last_visits: Dict[str, int],
    now: Optional[datetime] = None,
) -> datetime:
    """Baseline for the "clean for Xh Ym" counter.

    Latest precise visit instant, else midnight of the latest visit day,
    else the earliest tracking start, else now.
    """
    now = now or datetime.now()
    if last_visits:
        return from_epoch_ms(max(last_visits.values()))

    last = latest_day(d for days in visits.values() for d in days)
    if last:
        return parse_day_key(last)

    if sites:
        return min(created_at_of(s, now) for s in sites)
    return now


def elapsed_seconds(since: datetime, now: Optional[datetime] = None) -> int:
    now = now or datetime.now()
    return max(0, int((now - since).total_seconds()))
