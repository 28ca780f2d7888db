# Shared State Module
# This module holds process-wide singletons shared across all routers

from pathlib import Path

# Project root for path resolution in routers
PROJECT_ROOT = Path(__file__).parent.parent

# === Lazy-loaded dependencies ===
# These will be initialized when first accessed or during api.py lifespan

# Key-value store instance
_store = None

def get_store():
    """Get the JSON-backed store, creating it if needed."""
    global _store
    if _store is None:
        from config.settings_loader import get_storage_path
        from streak.store import JsonFileStore
        path = get_storage_path()
        if not path.is_absolute():
            path = PROJECT_ROOT / path
        _store = JsonFileStore(path)
    return _store

# Rule engine instance
_rule_engine = None

def get_rule_engine():
    """Get the rule engine the synthesizer reconciles against."""
    global _rule_engine
    if _rule_engine is None:
        from streak.rules import InMemoryRuleEngine
        _rule_engine = InMemoryRuleEngine()
    return _rule_engine

# Alarm scheduler instance
_scheduler = None

def get_scheduler():
    """Get the alarm scheduler (the global SchedulerService unless replaced)."""
    global _scheduler
    if _scheduler is None:
        from core.scheduler import scheduler_service
        _scheduler = scheduler_service
    return _scheduler

# Streak service instance
_streak_service = None

def get_streak_service():
    """Get the StreakService, creating it from settings if needed."""
    global _streak_service
    if _streak_service is None:
        from config.settings_loader import get_allowance, get_enforcement, get_streak_policy
        from core.event_bus import event_bus
        from streak.service import StreakService

        enforcement = get_enforcement()
        allowance = get_allowance()
        policy = get_streak_policy()
        _streak_service = StreakService(
            get_store(),
            get_rule_engine(),
            get_scheduler(),
            bus=event_bus,
            fallback_redirect_url=enforcement.fallback_redirect_url,
            block_priority=enforcement.block_priority,
            redirect_priority=enforcement.redirect_priority,
            never_visited_bonus=policy.never_visited_bonus_days,
            min_timer_delay_ms=allowance.min_timer_delay_ms,
            allowance_minutes=allowance.default_minutes,
            seed_default_sites=policy.seed_default_sites,
        )
    return _streak_service

# Dispatcher instance
_dispatcher = None

def get_dispatcher():
    """Get the Dispatcher with the streak service attached."""
    global _dispatcher
    if _dispatcher is None:
        from core.dispatcher import Dispatcher
        _dispatcher = Dispatcher()
        get_streak_service().attach(_dispatcher)
    return _dispatcher

def reset_state():
    """Forget all singletons (tests and settings reloads)."""
    global _store, _rule_engine, _scheduler, _streak_service, _dispatcher
    _store = _rule_engine = _scheduler = _streak_service = _dispatcher = None
