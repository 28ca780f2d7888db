# Sites Router - Tracked site management, visit resets, import/export
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel

from shared.state import get_dispatcher, get_streak_service
from streak.schemas import BlockMode, TrackedSite
from streak.sites import SiteNotFoundError

router = APIRouter(tags=["Sites"])


# === Pydantic Models ===

class CreateSiteRequest(BaseModel):
    label: str
    pattern: str
    is_regex: bool = False
    block_mode: BlockMode = BlockMode.OFF
    redirect_url: str = ""


class UpdateSiteRequest(BaseModel):
    label: Optional[str] = None
    block_mode: Optional[BlockMode] = None
    redirect_url: Optional[str] = None


async def _submit(func, *args, **kwargs):
    """Run a service call inside the dispatcher and map domain errors to HTTP."""
    try:
        return await get_dispatcher().submit(func, *args, **kwargs)
    except SiteNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# === Sites ===

@router.get("/sites", response_model=List[TrackedSite])
async def list_sites():
    return await get_streak_service().list_sites()


@router.post("/sites", response_model=TrackedSite)
async def create_site(request: CreateSiteRequest):
    """Start tracking a site."""
    service = get_streak_service()
    return await _submit(
        service.add_site,
        request.label,
        request.pattern,
        request.is_regex,
        block_mode=request.block_mode,
        redirect_url=request.redirect_url,
    )


@router.post("/sites/seed", response_model=List[TrackedSite])
async def seed_sites():
    """Add the default YouTube and Netflix entries if they are missing."""
    return await _submit(get_streak_service().seed_defaults)


@router.patch("/sites/{site_id}", response_model=TrackedSite)
async def update_site(site_id: str, request: UpdateSiteRequest):
    """Change a site's label, enforcement mode or redirect target."""
    service = get_streak_service()
    return await _submit(service.update_site, site_id, request.label, request.block_mode, request.redirect_url)


@router.delete("/sites/{site_id}")
async def delete_site(site_id: str):
    """Stop tracking a site and drop its visits and allowance."""
    await _submit(get_streak_service().delete_site, site_id)
    return {"status": "deleted", "id": site_id}


@router.post("/sites/{site_id}/reset-visits")
async def reset_site_visits(site_id: str):
    await _submit(get_streak_service().reset_visits, site_id)
    return {"status": "reset", "id": site_id}


# === Data ===

@router.post("/data/reset-visits")
async def reset_all_visits():
    """Clear recorded visit days for all sites."""
    await _submit(get_streak_service().reset_visits)
    return {"status": "reset"}


@router.post("/data/reset")
async def reset_everything():
    """Remove all tracked sites, visits and allowances."""
    await _submit(get_streak_service().reset_all)
    return {"status": "reset"}


@router.get("/data/export")
async def export_data():
    return await get_streak_service().export_data()


@router.post("/data/import")
async def import_data(payload: Dict[str, Any] = Body(...)):
    """Replace the keys present in an exported document."""
    imported = await _submit(get_streak_service().import_data, payload)
    return {"status": "imported", "keys": imported}
