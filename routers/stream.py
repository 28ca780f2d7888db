from typing import Optional

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse
from core.event_bus import event_bus
import asyncio
import json

router = APIRouter(tags=["Stream"])


def _parse_types(types: Optional[str]):
    return [t.strip() for t in types.split(",") if t.strip()] if types else None


@router.get("/events")
async def event_stream(request: Request, types: Optional[str] = None):
    """
    Server-Sent Events (SSE) endpoint.
    Clients connect here to receive badge, visit, rule and allowance updates.
    Pass ?types=badge,rules to receive only those event types.
    """
    queue = await event_bus.subscribe(types=_parse_types(types))

    async def event_generator():
        try:
            while True:
                # Check for client disconnect
                if await request.is_disconnected():
                    break

                # Get event from queue
                event = await queue.get()
                yield {
                    "event": event["type"],
                    "data": json.dumps(event)
                }
        except asyncio.CancelledError:
            pass
        finally:
            event_bus.unsubscribe(queue)

    return EventSourceResponse(event_generator())


@router.get("/events/recent")
async def recent_events(limit: int = 20, types: Optional[str] = None):
    """Last events published on the bus, oldest first."""
    return event_bus.recent(limit, _parse_types(types))
