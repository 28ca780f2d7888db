"""
Streak - stay away from the sites you choose, one clean day at a time.

Watches navigations to record which tracked sites were visited on which
day, turns those visit days into clean streaks, and keeps a declarative
rule engine's block/redirect rules in sync with site config and temporary
allowances.

Usage:
    from streak import StreakService, MemoryStore, InMemoryRuleEngine
"""

from streak.schemas import (
    Badge,
    BlockMode,
    EnforcementRule,
    NavigationEvent,
    StreakOverview,
    TrackedSite,
)
from streak.store import JsonFileStore, KeyValueStore, MemoryStore, StreakRepository
from streak.rules import InMemoryRuleEngine, RuleEngine, RuleEngineError, RuleSynthesizer
from streak.sites import SiteNotFoundError
from streak.service import StreakService

__all__ = [
    # Schemas
    "Badge",
    "BlockMode",
    "EnforcementRule",
    "NavigationEvent",
    "StreakOverview",
    "TrackedSite",
    # Storage
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "StreakRepository",
    # Enforcement
    "InMemoryRuleEngine",
    "RuleEngine",
    "RuleEngineError",
    "RuleSynthesizer",
    # Service
    "SiteNotFoundError",
    "StreakService",
]
