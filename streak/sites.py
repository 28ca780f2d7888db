"""
Tracked site management helpers: creation, edits, lookup and import checks.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from streak.days import to_epoch_ms
from streak.rules import is_http_url
from streak.schemas import BlockMode, TrackedSite
from streak.store import (
    JOURNAL,
    LAST_VISITS,
    MOTIVATIONS,
    TRACKED_SITES,
    VISITS,
    parse_instants,
    parse_journal,
    parse_motivations,
    parse_sites,
    parse_visits,
)


class SiteNotFoundError(KeyError):
    def __init__(self, site_id: str):
        super().__init__(site_id)
        self.site_id = site_id

    def __str__(self):
        return f"Tracked site {self.site_id!r} not found"


def generate_site_id(now: datetime, existing_ids: Iterable[str] = ()) -> str:
    existing = set(existing_ids)
    while True:
        site_id = f"site_{to_epoch_ms(now)}_{uuid.uuid4().hex[:6]}"
        if site_id not in existing:
            return site_id


def new_site(
    label: str,
    pattern: str,
    is_regex: bool = False,
    now: Optional[datetime] = None,
    existing_ids: Iterable[str] = (),
    block_mode: BlockMode = BlockMode.OFF,
    redirect_url: str = "",
) -> TrackedSite:
    label = (label or "").strip()
    pattern = (pattern or "").strip()
    if not label or not pattern:
        raise ValueError("Both label and pattern are required")
    redirect_url = _checked_redirect(redirect_url)
    now = now or datetime.now()
    return TrackedSite(
        id=generate_site_id(now, existing_ids),
        label=label,
        pattern=pattern,
        is_regex=bool(is_regex),
        block_mode=block_mode,
        redirect_url=redirect_url,
        created_at=now,
    )


def default_sites(now: Optional[datetime] = None) -> List[TrackedSite]:
    now = now or datetime.now()
    return [
        TrackedSite(id="yt", label="YouTube", pattern="youtube.com", created_at=now),
        TrackedSite(id="nf", label="Netflix", pattern="netflix.com", created_at=now),
    ]


def _checked_redirect(redirect_url: Optional[str]) -> str:
    value = (redirect_url or "").strip()
    if value and not is_http_url(value):
        raise ValueError(f"Redirect target must be an absolute http(s) URL: {value!r}")
    return value


def edit_site(
    site: TrackedSite,
    label: Optional[str] = None,
    block_mode: Optional[BlockMode] = None,
    redirect_url: Optional[str] = None,
) -> TrackedSite:
    changes: Dict[str, Any] = {}
    if label is not None:
        if not label.strip():
            raise ValueError("Label cannot be empty")
        changes["label"] = label.strip()
    if block_mode is not None:
        changes["block_mode"] = BlockMode(block_mode)
    if redirect_url is not None:
        changes["redirect_url"] = _checked_redirect(redirect_url)
    return site.model_copy(update=changes)


def find_site(sites: List[TrackedSite], site_id: str) -> TrackedSite:
    for site in sites:
        if site.id == site_id:
            return site
    raise SiteNotFoundError(site_id)


def match_site_for_referrer(sites: List[TrackedSite], referrer: str) -> Optional[str]:
    """Best-effort site id for the page a redirect came from.

    Only plain patterns are considered; falls back to the first tracked site.
    """
    lowered = (referrer or "").lower()
    if lowered:
        for site in sites:
            if site.is_regex or not site.pattern:
                continue
            if site.pattern.lower() in lowered:
                return site.id
    return sites[0].id if sites else None


def parse_import(payload: Any) -> Dict[str, Any]:
    """Validate an exported document. Returns raw store values for the keys present."""
    if not isinstance(payload, dict):
        raise ValueError("Import payload must be a JSON object")

    updates: Dict[str, Any] = {}
    raw_sites = payload.get(TRACKED_SITES)
    if isinstance(raw_sites, list):
        sites = parse_sites(raw_sites)
        ids = [s.id for s in sites]
        if len(ids) != len(set(ids)):
            raise ValueError("Imported sites contain duplicate ids")
        updates[TRACKED_SITES] = [s.model_dump(mode="json") for s in sites]
    if isinstance(payload.get(VISITS), dict):
        updates[VISITS] = {k: sorted(v) for k, v in parse_visits(payload[VISITS]).items()}
    if isinstance(payload.get(LAST_VISITS), dict):
        updates[LAST_VISITS] = parse_instants(payload[LAST_VISITS])
    if isinstance(payload.get(MOTIVATIONS), list):
        updates[MOTIVATIONS] = parse_motivations(payload[MOTIVATIONS])
    if isinstance(payload.get(JOURNAL), list):
        updates[JOURNAL] = [e.model_dump() for e in parse_journal(payload[JOURNAL])]

    if not updates:
        raise ValueError("Import payload contains no recognised keys")
    return updates
