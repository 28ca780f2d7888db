"""
Pydantic Schemas for Streak

Defines the data models for:
- TrackedSite (user-configured destinations and enforcement mode)
- EnforcementRule (derived rules submitted to the rule engine)
- Badge (today's visited/clean indicator)
- JournalEntry (free-text log)
- Streak read models (per-site streaks, overview, history)
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Tracked Sites
# =============================================================================

class BlockMode(str, Enum):
    OFF = "off"
    BLOCK = "block"
    REDIRECT = "redirect"


class TrackedSite(BaseModel):
    """A destination the user wants to stay away from."""
    id: str
    label: str
    pattern: str
    is_regex: bool = False
    block_mode: BlockMode = BlockMode.OFF
    redirect_url: str = ""
    created_at: Optional[datetime] = None


# =============================================================================
# Enforcement Rules
# =============================================================================

class RuleAction(BaseModel):
    type: Literal["block", "redirect"]
    redirect_url: Optional[str] = None


class RuleCondition(BaseModel):
    url_filter: str
    resource_types: List[str] = Field(default_factory=lambda: ["main_frame"])


class EnforcementRule(BaseModel):
    """Rule shape accepted by the rule engine. Never persisted by the core."""
    id: int
    priority: int
    action: RuleAction
    condition: RuleCondition


# =============================================================================
# Read Models
# =============================================================================

class Badge(BaseModel):
    state: Literal["visited", "clean"]
    text: str
    color: str
    title: str


class JournalEntry(BaseModel):
    ts: int  # epoch ms
    text: str


class SiteStreak(BaseModel):
    site: TrackedSite
    streak: int
    visited_today: bool
    created_today: bool
    last_visit_at: Optional[int] = None  # epoch ms
    visit_days: List[str] = Field(default_factory=list)
    allowed_until: Optional[int] = None  # epoch ms, only while active


class HistoryDay(BaseModel):
    day: str
    status: Literal["today", "visited", "clean"]


class StreakOverview(BaseModel):
    today: str
    overall_streak: int
    badge: Badge
    sites: List[SiteStreak]
    history: List[HistoryDay]
    clean_since: datetime
    clean_seconds: int


# =============================================================================
# Inbound Events
# =============================================================================

class NavigationEvent(BaseModel):
    """A committed, history-state or completed navigation from the browser."""
    frame_id: int = 0
    url: str
    kind: Literal["committed", "history", "completed"] = "committed"


class StorageChange(BaseModel):
    changed_keys: List[str]
    area: str = "local"
