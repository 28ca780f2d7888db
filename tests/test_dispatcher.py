import asyncio
import unittest
from datetime import datetime

from core.dispatcher import ALARM, NAVIGATION, Dispatcher
from streak.rules import InMemoryRuleEngine
from streak.schemas import BlockMode, NavigationEvent
from streak.service import StreakService
from streak.store import MemoryStore
from tests.support import FakeClock, FakeScheduler


class TestDispatcher(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.dispatcher = Dispatcher()
        self.dispatcher.start()

    async def asyncTearDown(self):
        await self.dispatcher.stop()

    async def test_handlers_never_interleave(self):
        log = []

        async def slow(payload):
            log.append(f"start {payload}")
            await asyncio.sleep(0.01)
            log.append(f"end {payload}")

        self.dispatcher.register(NAVIGATION, slow)
        channel = self.dispatcher.channel(NAVIGATION)
        for i in range(3):
            channel.send_nowait(i)
        await self.dispatcher.drain()

        self.assertEqual(log, ["start 0", "end 0", "start 1", "end 1", "start 2", "end 2"])

    async def test_events_across_channels_are_fifo(self):
        seen = []

        async def record(payload):
            seen.append(payload)

        self.dispatcher.register(NAVIGATION, record)
        self.dispatcher.register(ALARM, record)
        self.dispatcher.channel(ALARM).send_nowait("a1")
        self.dispatcher.channel(NAVIGATION).send_nowait("n1")
        self.dispatcher.channel(ALARM).send_nowait("a2")
        await self.dispatcher.drain()
        self.assertEqual(seen, ["a1", "n1", "a2"])

    async def test_submit_returns_result_and_raises_errors(self):
        async def add(a, b=0):
            return a + b

        async def boom():
            raise ValueError("bad input")

        self.assertEqual(await self.dispatcher.submit(add, 2, b=3), 5)
        with self.assertRaises(ValueError):
            await self.dispatcher.submit(boom)
        self.assertTrue(self.dispatcher.running)

    async def test_failing_event_is_logged_and_loop_continues(self):
        async def fail(payload):
            raise RuntimeError("handler broke")

        self.dispatcher.register(ALARM, fail)
        with self.assertLogs("dispatcher", level="ERROR"):
            self.dispatcher.channel(ALARM).send_nowait("x")
            await self.dispatcher.drain()

        async def ok():
            return "still alive"

        self.assertEqual(await self.dispatcher.submit(ok), "still alive")

    async def test_stop_releases_waiting_callers(self):
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(10)

        async def quick():
            return "never runs"

        running = asyncio.create_task(self.dispatcher.submit(slow))
        queued = asyncio.create_task(self.dispatcher.submit(quick))
        await started.wait()

        await self.dispatcher.stop()
        done, pending = await asyncio.wait([running, queued], timeout=1)

        self.assertEqual(pending, set())
        self.assertTrue(running.cancelled())
        self.assertTrue(queued.cancelled())
        self.assertFalse(self.dispatcher.running)

    async def test_unregistered_channel_request_fails(self):
        with self.assertRaises(LookupError):
            await self.dispatcher.channel("unknown").request("payload")


class TestServiceWiring(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.clock = FakeClock(datetime(2025, 3, 10, 15, 0))
        self.scheduler = FakeScheduler()
        self.engine = InMemoryRuleEngine()
        self.service = StreakService(MemoryStore(), self.engine, self.scheduler, clock=self.clock)
        self.dispatcher = Dispatcher()
        self.service.attach(self.dispatcher)
        self.dispatcher.start()
        await self.dispatcher.submit(self.service.startup)

    async def asyncTearDown(self):
        await self.dispatcher.stop()

    async def test_site_edit_triggers_rule_rebuild(self):
        await self.dispatcher.submit(self.service.update_site, "nf", block_mode=BlockMode.REDIRECT)
        await self.dispatcher.drain()
        rules = await self.engine.list_current_rules()
        self.assertEqual([r.action.type for r in rules], ["redirect"])

    async def test_navigation_channel_records_visit(self):
        record = await self.dispatcher.channel(NAVIGATION).request(NavigationEvent(url="https://youtube.com/"))
        self.assertEqual(record.recorded, ["yt"])

    async def test_fired_alarm_is_handled(self):
        await self.dispatcher.submit(self.service.update_site, "yt", block_mode=BlockMode.BLOCK)
        await self.dispatcher.submit(self.service.allow_temporarily, "yt")
        await self.dispatcher.drain()
        self.assertEqual(await self.engine.list_current_rules(), [])

        self.clock.advance(minutes=3)
        self.scheduler.fire("allow-expire-yt")
        await self.dispatcher.drain()
        self.assertEqual(await self.service.active_allowances(), {})
        self.assertEqual(len(await self.engine.list_current_rules()), 1)


if __name__ == '__main__':
    unittest.main()
