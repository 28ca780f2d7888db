"""
Streak Service - the event handlers behind every entry point.

Handlers are meant to run inside the Dispatcher loop (see attach()), one at
a time. Store writes notify the dispatcher's storage channel; scheduler
alarms arrive on the alarm channel.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.dispatcher import ALARM, NAVIGATION, STORAGE, Dispatcher
from streak import allowances as allowance_rules
from streak import journal as journal_ops
from streak.days import day_key, to_epoch_ms
from streak.ledger import VisitRecord, compute_badge, purge_site, record_visit
from streak.rules import REDIRECT_PRIORITY, BLOCK_PRIORITY, RuleEngine, RuleSynthesizer, RuleUpdate
from streak.schemas import (
    Badge,
    BlockMode,
    NavigationEvent,
    SiteStreak,
    StorageChange,
    StreakOverview,
    TrackedSite,
)
from streak.sites import default_sites, edit_site, find_site, match_site_for_referrer, new_site, parse_import
from streak.store import (
    ALLOWANCES,
    JOURNAL,
    LAST_VISITS,
    MOTIVATIONS,
    TRACKED_SITES,
    VISITS,
    KeyValueStore,
    StreakRepository,
    dump_journal,
    dump_sites,
    dump_visits,
)
from streak.streaks import (
    NEVER_VISITED_BONUS_DAYS,
    build_history,
    clean_since,
    compute_current_streak,
    compute_overall_streak,
    created_today,
    elapsed_seconds,
)

logger = logging.getLogger("streak")

TOP_LEVEL_FRAME = 0


class StreakService:
    def __init__(
        self,
        store: KeyValueStore,
        engine: RuleEngine,
        scheduler,
        bus=None,
        fallback_redirect_url: str = "http://127.0.0.1:8000/blocked",
        block_priority: int = BLOCK_PRIORITY,
        redirect_priority: int = REDIRECT_PRIORITY,
        never_visited_bonus: int = NEVER_VISITED_BONUS_DAYS,
        min_timer_delay_ms: int = allowance_rules.MIN_TIMER_DELAY_MS,
        allowance_minutes: int = 3,
        seed_default_sites: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.repository = StreakRepository(store)
        self.engine = engine
        self.scheduler = scheduler
        self.bus = bus
        self.synthesizer = RuleSynthesizer(
            self.repository,
            engine,
            fallback_redirect_url,
            block_priority=block_priority,
            redirect_priority=redirect_priority,
        )
        self.never_visited_bonus = never_visited_bonus
        self.min_timer_delay_ms = min_timer_delay_ms
        self.allowance_minutes = allowance_minutes
        self.seed_default_sites = seed_default_sites
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def now_ms(self) -> int:
        return to_epoch_ms(self.clock())

    def attach(self, dispatcher: Dispatcher):
        """Route navigation, storage and alarm events through the dispatcher."""
        dispatcher.register(NAVIGATION, self.handle_navigation)
        dispatcher.register(STORAGE, self.handle_storage_change)
        dispatcher.register(ALARM, self.handle_alarm)

        storage = dispatcher.channel(STORAGE)
        alarms = dispatcher.channel(ALARM)
        self.store.add_listener(
            lambda keys, area: storage.send_nowait(StorageChange(changed_keys=keys, area=area))
        )
        self.scheduler.add_listener(alarms.send_nowait)

    async def _publish(self, event_type: str, data: Dict[str, Any]):
        if self.bus is not None:
            await self.bus.publish(event_type, "streak", data)

    # === Lifecycle ===

    async def startup(self):
        """Initialize storage, restore timers and derived state after a (re)start."""
        seed = (lambda: default_sites(self.now())) if self.seed_default_sites else list
        await self.repository.ensure_initial_data(seed)
        await self.restore_allowance_timers()
        await self.refresh_badge()
        await self.rebuild_rules()

    # === Navigation / Visit Ledger ===

    async def handle_navigation(self, event: NavigationEvent) -> Optional[VisitRecord]:
        if event.frame_id != TOP_LEVEL_FRAME or not event.url:
            return None
        return await self.record_visit(event.url)

    async def record_visit(self, url: str) -> VisitRecord:
        state = await self.repository.load(TRACKED_SITES, VISITS, LAST_VISITS)
        record = record_visit(state.sites, state.visits, state.last_visits, url, self.now())

        if record.did_record:
            await self.repository.save(visits=record.visits, last_visits=record.last_visits)
        elif record.matched:
            await self.repository.save(last_visits=record.last_visits)

        if record.matched:
            logger.info(f"Visit matched {record.matched} (new day for {record.recorded})")
            await self._publish("visit", {"day": record.day, "matched": record.matched, "recorded": record.recorded})
        if record.did_record:
            await self.refresh_badge()
        return record

    async def current_badge(self) -> Badge:
        state = await self.repository.load(TRACKED_SITES, VISITS)
        return compute_badge(state.sites, state.visits, self.now())

    async def refresh_badge(self) -> Badge:
        badge = await self.current_badge()
        await self._publish("badge", badge.model_dump())
        return badge

    # === Rules ===

    async def handle_storage_change(self, change: StorageChange):
        if change.area == "local" and TRACKED_SITES in change.changed_keys:
            await self.rebuild_rules()

    async def rebuild_rules(self) -> Optional[RuleUpdate]:
        update = await self.synthesizer.rebuild(self.now_ms())
        if update is not None:
            await self._publish("rules", {
                "active": [r.id for r in update.add_rules],
                "removed": len(update.remove_ids),
            })
        return update

    # === Allowances ===

    async def allow_temporarily(self, site_id: str, expiry_ms: Optional[int] = None) -> Dict[str, Any]:
        """Suspend enforcement for one site until `expiry_ms`.

        Returns once the allowance is persisted and rules are resynthesized.
        """
        now_ms = self.now_ms()
        if expiry_ms is None:
            expiry_ms = now_ms + self.allowance_minutes * 60 * 1000
        if expiry_ms <= now_ms:
            raise ValueError("Allowance expiry must be in the future")

        state = await self.repository.load(TRACKED_SITES, ALLOWANCES)
        find_site(state.sites, site_id)

        await self.repository.save(allowances=allowance_rules.grant(state.allowances, site_id, expiry_ms))
        when = allowance_rules.timer_when(expiry_ms, now_ms, self.min_timer_delay_ms)
        self.scheduler.schedule_once(allowance_rules.alarm_name(site_id), when)
        logger.info(f"Allowance granted for {site_id} until {expiry_ms}")

        await self.rebuild_rules()
        await self._publish("allowance", {"site_id": site_id, "state": "allowed", "expires_at": expiry_ms})
        return {"ok": True, "site_id": site_id, "expires_at": expiry_ms}

    async def handle_alarm(self, name: str):
        site_id = allowance_rules.site_id_from_alarm(name)
        if site_id is None:
            return
        state = await self.repository.load(ALLOWANCES)
        updated, changed = allowance_rules.expire(state.allowances, site_id, self.now_ms())
        if changed:
            await self.repository.save(allowances=updated)
            logger.info(f"Allowance expired for {site_id}")
            await self._publish("allowance", {"site_id": site_id, "state": "unrestricted"})
        await self.rebuild_rules()

    async def active_allowances(self) -> Dict[str, int]:
        state = await self.repository.load(ALLOWANCES)
        return allowance_rules.active_allowances(state.allowances, self.now_ms())

    async def restore_allowance_timers(self):
        """Purge expired entries and re-arm timers lost with the previous process."""
        now_ms = self.now_ms()
        state = await self.repository.load(ALLOWANCES)
        active, changed = allowance_rules.purge_expired(state.allowances, now_ms)
        if changed:
            await self.repository.save(allowances=active)
        for site_id, expiry_ms in active.items():
            when = allowance_rules.timer_when(expiry_ms, now_ms, self.min_timer_delay_ms)
            self.scheduler.schedule_once(allowance_rules.alarm_name(site_id), when)

    # === Site management ===

    async def list_sites(self) -> List[TrackedSite]:
        return (await self.repository.load(TRACKED_SITES)).sites

    async def add_site(
        self,
        label: str,
        pattern: str,
        is_regex: bool = False,
        block_mode: BlockMode = BlockMode.OFF,
        redirect_url: str = "",
    ) -> TrackedSite:
        sites = await self.list_sites()
        site = new_site(
            label, pattern, is_regex,
            now=self.now(),
            existing_ids=[s.id for s in sites],
            block_mode=block_mode,
            redirect_url=redirect_url,
        )
        await self.repository.save(sites=sites + [site])
        logger.info(f"Tracking {site.label} ({site.id})")
        return site

    async def seed_defaults(self) -> List[TrackedSite]:
        sites = await self.list_sites()
        existing = {s.id for s in sites}
        added = [s for s in default_sites(self.now()) if s.id not in existing]
        if added:
            await self.repository.save(sites=sites + added)
        return added

    async def update_site(
        self,
        site_id: str,
        label: Optional[str] = None,
        block_mode: Optional[BlockMode] = None,
        redirect_url: Optional[str] = None,
    ) -> TrackedSite:
        sites = await self.list_sites()
        updated = edit_site(find_site(sites, site_id), label, block_mode, redirect_url)
        await self.repository.save(sites=[updated if s.id == site_id else s for s in sites])
        return updated

    async def delete_site(self, site_id: str):
        """Remove a site together with its ledger and allowance entries."""
        state = await self.repository.load(TRACKED_SITES, VISITS, LAST_VISITS, ALLOWANCES)
        find_site(state.sites, site_id)
        purge_site(site_id, state.visits, state.last_visits)
        state.allowances.pop(site_id, None)
        await self.repository.save(
            sites=[s for s in state.sites if s.id != site_id],
            visits=state.visits,
            last_visits=state.last_visits,
            allowances=state.allowances,
        )
        self.scheduler.cancel(allowance_rules.alarm_name(site_id))
        logger.info(f"Deleted site {site_id}")
        await self.refresh_badge()

    async def reset_visits(self, site_id: Optional[str] = None):
        """Clear recorded visit days for one site, or for every site."""
        if site_id is None:
            await self.repository.save(visits={})
        else:
            state = await self.repository.load(TRACKED_SITES, VISITS)
            find_site(state.sites, site_id)
            state.visits.pop(site_id, None)
            await self.repository.save(visits=state.visits)
        await self.refresh_badge()

    async def reset_all(self):
        pending = (await self.repository.load(ALLOWANCES)).allowances
        await self.repository.clear()
        for site_id in pending:
            self.scheduler.cancel(allowance_rules.alarm_name(site_id))
        await self.refresh_badge()

    # === Import / Export ===

    async def export_data(self) -> Dict[str, Any]:
        state = await self.repository.load(TRACKED_SITES, VISITS, LAST_VISITS, MOTIVATIONS, JOURNAL)
        return {
            TRACKED_SITES: dump_sites(state.sites),
            VISITS: dump_visits(state.visits),
            LAST_VISITS: dict(state.last_visits),
            MOTIVATIONS: list(state.motivations),
            JOURNAL: dump_journal(state.journal),
        }

    async def import_data(self, payload: Any) -> List[str]:
        updates = parse_import(payload)
        await self.store.set(updates)
        await self.refresh_badge()
        return sorted(updates)

    # === Motivations / Journal ===

    async def list_motivations(self) -> List[str]:
        return (await self.repository.load(MOTIVATIONS)).motivations

    async def add_motivation(self, text: str) -> List[str]:
        motivations = journal_ops.add_motivation(await self.list_motivations(), text)
        await self.repository.save(motivations=motivations)
        return motivations

    async def delete_motivation(self, index: int) -> List[str]:
        motivations = journal_ops.remove_at(await self.list_motivations(), index)
        await self.repository.save(motivations=motivations)
        return motivations

    async def list_journal(self):
        return (await self.repository.load(JOURNAL)).journal

    async def add_journal_entry(self, text: str):
        entries = journal_ops.add_entry(await self.list_journal(), text, self.now())
        await self.repository.save(journal=entries)
        return entries

    async def delete_journal_entry(self, index: int):
        entries = journal_ops.remove_at(await self.list_journal(), index)
        await self.repository.save(journal=entries)
        return entries

    # === Read models ===

    async def overview(self) -> StreakOverview:
        now = self.now()
        now_ms = to_epoch_ms(now)
        state = await self.repository.load(TRACKED_SITES, VISITS, LAST_VISITS, ALLOWANCES)
        today = day_key(now)

        sites = []
        for site in state.sites:
            days = state.visits.get(site.id, set())
            expiry = state.allowances.get(site.id)
            sites.append(SiteStreak(
                site=site,
                streak=compute_current_streak(site, days, now, self.never_visited_bonus),
                visited_today=today in days,
                created_today=created_today(site, now),
                last_visit_at=state.last_visits.get(site.id),
                visit_days=sorted(days),
                allowed_until=expiry if allowance_rules.is_allowed(state.allowances, site.id, now_ms) else None,
            ))

        since = clean_since(state.sites, state.visits, state.last_visits, now)
        return StreakOverview(
            today=today,
            overall_streak=compute_overall_streak(state.sites, state.visits, now, self.never_visited_bonus),
            badge=compute_badge(state.sites, state.visits, now),
            sites=sites,
            history=build_history(state.sites, state.visits, now),
            clean_since=since,
            clean_seconds=elapsed_seconds(since, now),
        )

    async def blocked_page(self, referrer: str = "") -> Dict[str, Any]:
        state = await self.repository.load(TRACKED_SITES, MOTIVATIONS)
        return {
            "phrase": journal_ops.pick_motivation(state.motivations),
            "site_id": match_site_for_referrer(state.sites, referrer),
            "allowance_minutes": self.allowance_minutes,
        }
