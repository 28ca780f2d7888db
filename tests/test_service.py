import unittest
from datetime import datetime

from core.event_bus import EventBus
from streak.days import to_epoch_ms
from streak.rules import InMemoryRuleEngine
from streak.schemas import BlockMode, NavigationEvent, StorageChange
from streak.service import StreakService
from streak.sites import SiteNotFoundError
from streak.store import ALLOWANCES, LAST_VISITS, TRACKED_SITES, VISITS
from tests.support import FailingRuleEngine, FakeClock, FakeScheduler, RecordingStore

NOW = datetime(2025, 3, 10, 15, 0)


class TestStreakService(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.clock = FakeClock(NOW)
        self.scheduler = FakeScheduler()
        self.store = RecordingStore()
        self.engine = InMemoryRuleEngine()
        self.bus = EventBus()
        self.service = StreakService(self.store, self.engine, self.scheduler, bus=self.bus, clock=self.clock)
        await self.service.startup()
        self.store.writes.clear()

    async def test_startup_seeds_defaults_once(self):
        sites = await self.service.list_sites()
        self.assertEqual([s.id for s in sites], ["yt", "nf"])
        self.assertTrue(all(s.block_mode == BlockMode.OFF for s in sites))

        await self.store.set({TRACKED_SITES: []})
        await self.service.startup()
        self.assertEqual(await self.service.list_sites(), [])

    async def test_malformed_values_are_reset_on_startup(self):
        store = RecordingStore({TRACKED_SITES: "oops", VISITS: [1, 2], ALLOWANCES: None})
        service = StreakService(store, InMemoryRuleEngine(), FakeScheduler(), clock=self.clock)
        await service.startup()
        self.assertEqual(len(store.data[TRACKED_SITES]), 2)
        self.assertEqual(store.data[VISITS], {})
        self.assertEqual(store.data[ALLOWANCES], {})

    async def test_sub_frame_navigation_ignored(self):
        event = NavigationEvent(frame_id=7, url="https://www.youtube.com/embed/x")
        self.assertIsNone(await self.service.handle_navigation(event))
        self.assertEqual(self.store.writes, [])

    async def test_first_visit_of_day_writes_ledger_and_badge(self):
        record = await self.service.handle_navigation(NavigationEvent(url="https://www.youtube.com/watch"))
        self.assertEqual(record.recorded, ["yt"])
        self.assertEqual(self.store.writes, [{
            VISITS: {"yt": ["2025-03-10"]},
            LAST_VISITS: {"yt": to_epoch_ms(NOW)},
        }])
        badges = [e["data"]["state"] for e in self.bus.recent(types=["badge"])]
        self.assertEqual(badges[-1], "visited")

    async def test_repeat_visit_only_updates_last_visit(self):
        await self.service.record_visit("https://youtube.com/a")
        self.clock.advance(hours=1)
        self.store.writes.clear()

        record = await self.service.record_visit("https://youtube.com/b")
        self.assertFalse(record.did_record)
        self.assertEqual(self.store.writes, [{LAST_VISITS: {"yt": to_epoch_ms(self.clock.now)}}])

    async def test_badge_flips_back_at_midnight(self):
        await self.service.record_visit("https://netflix.com/title/1")
        self.assertEqual((await self.service.current_badge()).state, "visited")
        self.clock.advance(days=1)
        self.assertEqual((await self.service.current_badge()).state, "clean")

    async def test_storage_change_rebuilds_only_for_sites(self):
        await self.service.handle_storage_change(StorageChange(changed_keys=[VISITS]))
        self.assertEqual(self.engine.update_count, 1)
        await self.service.handle_storage_change(StorageChange(changed_keys=[TRACKED_SITES]))
        self.assertEqual(self.engine.update_count, 2)
        await self.service.handle_storage_change(StorageChange(changed_keys=[TRACKED_SITES], area="sync"))
        self.assertEqual(self.engine.update_count, 2)

    async def test_delete_site_purges_everything(self):
        await self.service.record_visit("https://youtube.com/")
        await self.service.allow_temporarily("yt")
        await self.service.delete_site("yt")

        self.assertEqual([s.id for s in await self.service.list_sites()], ["nf"])
        self.assertNotIn("yt", self.store.data[VISITS])
        self.assertNotIn("yt", self.store.data[LAST_VISITS])
        self.assertNotIn("yt", self.store.data[ALLOWANCES])
        self.assertIn("allow-expire-yt", self.scheduler.cancelled)
        self.assertEqual((await self.service.current_badge()).state, "clean")

        with self.assertRaises(SiteNotFoundError):
            await self.service.delete_site("yt")

    async def test_add_and_update_site_validation(self):
        site = await self.service.add_site("Reddit", "reddit.com", block_mode=BlockMode.REDIRECT)
        self.assertTrue(site.id.startswith("site_"))
        self.assertEqual(site.created_at, NOW)

        with self.assertRaises(ValueError):
            await self.service.add_site("", "x.com")
        with self.assertRaises(ValueError):
            await self.service.update_site(site.id, redirect_url="ftp://files")

        updated = await self.service.update_site(site.id, label="Reddit (all)", redirect_url="https://example.org")
        self.assertEqual(updated.label, "Reddit (all)")
        self.assertEqual(updated.block_mode, BlockMode.REDIRECT)

    async def test_reset_visits_and_reset_all(self):
        await self.service.record_visit("https://youtube.com/")
        await self.service.record_visit("https://netflix.com/")
        await self.service.reset_visits("yt")
        self.assertEqual(self.store.data[VISITS], {"nf": ["2025-03-10"]})

        await self.service.allow_temporarily("nf")
        await self.service.reset_all()
        self.assertEqual(self.store.data[TRACKED_SITES], [])
        self.assertEqual(self.store.data[ALLOWANCES], {})
        self.assertIn("allow-expire-nf", self.scheduler.cancelled)

    async def test_overview(self):
        self.clock.advance(days=2)
        await self.service.record_visit("https://netflix.com/")
        overview = await self.service.overview()

        streaks = {s.site.id: s.streak for s in overview.sites}
        self.assertEqual(streaks, {"yt": 3, "nf": 0})
        self.assertEqual(overview.overall_streak, 0)
        self.assertEqual(overview.badge.state, "visited")
        self.assertEqual(overview.today, "2025-03-12")
        self.assertEqual([h.status for h in overview.history], ["clean", "clean", "today"])
        self.assertEqual(overview.clean_seconds, 0)

    async def test_import_rejects_bad_payloads(self):
        with self.assertRaises(ValueError):
            await self.service.import_data(["not", "an", "object"])
        with self.assertRaises(ValueError):
            await self.service.import_data({"unrelated": 1})
        with self.assertRaises(ValueError):
            await self.service.import_data({TRACKED_SITES: [
                {"id": "a", "label": "A", "pattern": "a.com"},
                {"id": "a", "label": "B", "pattern": "b.com"},
            ]})

    async def test_export_then_import_into_fresh_store(self):
        await self.service.record_visit("https://youtube.com/")
        await self.service.add_motivation("Go outside")
        exported = await self.service.export_data()

        other = StreakService(RecordingStore(), InMemoryRuleEngine(), FakeScheduler(), clock=self.clock)
        keys = await other.import_data(exported)
        self.assertIn(TRACKED_SITES, keys)
        self.assertEqual(await other.list_motivations(), ["Go outside"])
        self.assertEqual((await other.current_badge()).state, "visited")

    async def test_journal_and_motivations(self):
        await self.service.add_journal_entry("first")
        self.clock.advance(minutes=1)
        entries = await self.service.add_journal_entry("second")
        self.assertEqual([e.text for e in entries], ["second", "first"])
        self.assertEqual([e.text for e in await self.service.delete_journal_entry(0)], ["first"])

        with self.assertRaises(IndexError):
            await self.service.delete_motivation(3)
        with self.assertRaises(ValueError):
            await self.service.add_motivation("   ")

    async def test_blocked_page(self):
        await self.service.add_motivation("Read a book instead")
        page = await self.service.blocked_page("https://www.netflix.com/browse")
        self.assertEqual(page["site_id"], "nf")
        self.assertEqual(page["phrase"], "Read a book instead")
        self.assertEqual((await self.service.blocked_page(""))["site_id"], "yt")

    async def test_tracking_survives_rule_engine_failure(self):
        store = RecordingStore()
        service = StreakService(store, FailingRuleEngine(), FakeScheduler(), clock=self.clock)
        with self.assertLogs("rules", level="ERROR"):
            await service.startup()
            await service.update_site("yt", block_mode=BlockMode.BLOCK)
            record = await service.handle_navigation(NavigationEvent(url="https://www.youtube.com/watch"))
            allowed = await service.allow_temporarily("yt")

        self.assertEqual(record.recorded, ["yt"])
        self.assertEqual(store.data[VISITS], {"yt": ["2025-03-10"]})
        self.assertEqual((await service.current_badge()).state, "visited")
        self.assertTrue(allowed["ok"])
        self.assertIsNone(await service.rebuild_rules())


if __name__ == '__main__':
    unittest.main()
