"""
Single-threaded event dispatcher.

Each event source posts onto its own named Channel; all channels feed one
FIFO inbox drained by a single loop task. A handler runs to completion
before the next event is taken, so handlers never interleave with each
other. Commands carry a future that resolves with the handler's result.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger("dispatcher")

NAVIGATION = "navigation"
STORAGE = "storage"
ALARM = "alarm"
COMMAND = "command"

Handler = Callable[[Any], Awaitable[Any]]


@dataclass
class Envelope:
    channel: str
    payload: Any
    future: Optional[asyncio.Future] = field(default=None, repr=False)


class Channel:
    """Sending end for one event source."""

    def __init__(self, name: str, dispatcher: "Dispatcher"):
        self.name = name
        self._dispatcher = dispatcher

    def send_nowait(self, payload: Any):
        self._dispatcher._inbox.put_nowait(Envelope(self.name, payload))

    async def send(self, payload: Any):
        await self._dispatcher._inbox.put(Envelope(self.name, payload))

    async def request(self, payload: Any) -> Any:
        """Send and wait until the handler has finished with this event."""
        future = asyncio.get_running_loop().create_future()
        await self._dispatcher._inbox.put(Envelope(self.name, payload, future))
        return await future


@dataclass
class Command:
    """A coroutine function to run inside the dispatcher loop."""
    func: Callable[..., Awaitable[Any]]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)


async def run_command(command: Command) -> Any:
    return await command.func(*command.args, **command.kwargs)


class Dispatcher:
    def __init__(self):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._handlers: Dict[str, Handler] = {COMMAND: run_command}
        self._channels: Dict[str, Channel] = {}
        self._task: Optional[asyncio.Task] = None

    def register(self, channel: str, handler: Handler):
        self._handlers[channel] = handler

    def channel(self, name: str) -> Channel:
        if name not in self._channels:
            self._channels[name] = Channel(name, self)
        return self._channels[name]

    async def submit(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run `func` serialized with every other event and return its result."""
        return await self.channel(COMMAND).request(Command(func, args, kwargs))

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="dispatcher")
        logger.info("✅ Dispatcher started")

    async def stop(self):
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        dropped = self._cancel_pending()
        if dropped:
            logger.warning(f"Dropped {dropped} queued events on stop")
        logger.info("🛑 Dispatcher stopped")

    def _cancel_pending(self) -> int:
        """Empty the inbox, cancelling the futures of waiting callers."""
        dropped = 0
        while not self._inbox.empty():
            envelope = self._inbox.get_nowait()
            if envelope.future is not None and not envelope.future.done():
                envelope.future.cancel()
            self._inbox.task_done()
            dropped += 1
        return dropped

    async def drain(self):
        """Wait until every queued event, including ones queued meanwhile, is handled."""
        await self._inbox.join()

    async def _run(self):
        while True:
            envelope = await self._inbox.get()
            try:
                await self._dispatch(envelope)
            finally:
                self._inbox.task_done()

    async def _dispatch(self, envelope: Envelope):
        handler = self._handlers.get(envelope.channel)
        if handler is None:
            logger.warning(f"No handler for channel {envelope.channel!r}, dropping event")
            if envelope.future and not envelope.future.done():
                envelope.future.set_exception(LookupError(envelope.channel))
            return

        try:
            result = await handler(envelope.payload)
        except asyncio.CancelledError:
            if envelope.future is not None and not envelope.future.done():
                envelope.future.cancel()
            raise
        except Exception as e:
            if envelope.future is not None:
                if not envelope.future.done():
                    envelope.future.set_exception(e)
            else:
                logger.exception(f"Handler for {envelope.channel!r} failed: {e}")
            return

        if envelope.future is not None and not envelope.future.done():
            envelope.future.set_result(result)
