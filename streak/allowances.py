"""
Allowance Store - time-boxed suspension of enforcement per site.

An entry whose expiry is at or before now is logically absent. Every reader
re-checks `expiry > now`; the expiry timer only speeds up physical removal.
"""

from enum import Enum
from typing import Dict, Optional, Tuple

ALARM_PREFIX = "allow-expire-"
MIN_TIMER_DELAY_MS = 1000


class AllowanceState(str, Enum):
    UNRESTRICTED = "unrestricted"
    ALLOWED = "allowed"


def allowance_state(allowances: Dict[str, int], site_id: str, now_ms: int) -> AllowanceState:
    expiry = allowances.get(site_id)
    if isinstance(expiry, (int, float)) and expiry > now_ms:
        return AllowanceState.ALLOWED
    return AllowanceState.UNRESTRICTED


def is_allowed(allowances: Dict[str, int], site_id: str, now_ms: int) -> bool:
    return allowance_state(allowances, site_id, now_ms) is AllowanceState.ALLOWED


def active_allowances(allowances: Dict[str, int], now_ms: int) -> Dict[str, int]:
    return {k: v for k, v in allowances.items() if v > now_ms}


def grant(allowances: Dict[str, int], site_id: str, expiry_ms: int) -> Dict[str, int]:
    updated = dict(allowances)
    updated[site_id] = int(expiry_ms)
    return updated


def expire(allowances: Dict[str, int], site_id: str, now_ms: int) -> Tuple[Dict[str, int], bool]:
    """Drop the entry if it has expired. Absent or still-active entries are left alone."""
    expiry = allowances.get(site_id)
    if expiry is None or expiry > now_ms:
        return allowances, False
    updated = dict(allowances)
    del updated[site_id]
    return updated, True


def purge_expired(allowances: Dict[str, int], now_ms: int) -> Tuple[Dict[str, int], bool]:
    active = active_allowances(allowances, now_ms)
    return active, len(active) != len(allowances)


def timer_when(expiry_ms: int, now_ms: int, min_delay_ms: int = MIN_TIMER_DELAY_MS) -> int:
    return max(now_ms + min_delay_ms, int(expiry_ms))


def alarm_name(site_id: str) -> str:
    return f"{ALARM_PREFIX}{site_id}"


def site_id_from_alarm(name: str) -> Optional[str]:
    if not name or not name.startswith(ALARM_PREFIX):
        return None
    return name[len(ALARM_PREFIX):] or None
