# Streaks Router - Read models, navigation intake and temporary allowances
from typing import Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from core.dispatcher import NAVIGATION
from shared.state import get_dispatcher, get_scheduler, get_streak_service
from streak.schemas import Badge, NavigationEvent, StreakOverview
from streak.sites import SiteNotFoundError

router = APIRouter(tags=["Streaks"])


class AllowRequest(BaseModel):
    site_id: str
    expires_at: Optional[int] = None  # epoch ms; defaults to now + allowance.default_minutes


@router.get("/streaks", response_model=StreakOverview)
async def get_overview():
    """Per-site streaks, overall streak, badge and day history."""
    return await get_streak_service().overview()


@router.get("/badge", response_model=Badge)
async def get_badge():
    return await get_streak_service().current_badge()


@router.post("/navigation")
async def report_navigation(event: NavigationEvent):
    """Feed a navigation from the browser. Sub-frame events are ignored."""
    record = await get_dispatcher().channel(NAVIGATION).request(event)
    if record is None:
        return {"status": "ignored"}
    return {"status": "recorded", "day": record.day, "matched": record.matched, "recorded": record.recorded}


@router.post("/allowances")
async def allow_site_temporarily(request: AllowRequest):
    """Suspend enforcement for one site until expires_at."""
    service = get_streak_service()
    try:
        return await get_dispatcher().submit(service.allow_temporarily, request.site_id, request.expires_at)
    except SiteNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/allowances", response_model=Dict[str, int])
async def list_allowances():
    """Active allowances as site id -> expiry (epoch ms)."""
    return await get_streak_service().active_allowances()


@router.get("/allowances/alarms")
async def list_alarms():
    return get_scheduler().list_alarms()


@router.get("/blocked")
async def blocked_page(referrer: str = ""):
    """Data for the page redirect rules point at: a phrase and the site to allow."""
    return await get_streak_service().blocked_page(referrer)
