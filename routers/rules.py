# Rules Router - Inspect and rebuild enforcement rules
from typing import List

from fastapi import APIRouter, HTTPException

from shared.state import get_dispatcher, get_rule_engine, get_streak_service
from streak.schemas import EnforcementRule

router = APIRouter(prefix="/rules", tags=["Rules"])


@router.get("", response_model=List[EnforcementRule])
async def list_rules():
    """Rules currently installed in the rule engine."""
    return await get_rule_engine().list_current_rules()


@router.post("/rebuild")
async def rebuild_rules():
    """Force a full synthesis pass."""
    update = await get_dispatcher().submit(get_streak_service().rebuild_rules)
    if update is None:
        raise HTTPException(status_code=502, detail="Rule engine rejected the update")
    return {"status": "rebuilt", "active": [r.id for r in update.add_rules], "removed": update.remove_ids}


@router.get("/evaluate")
async def evaluate(url: str):
    """Which rule, if any, the engine would apply to a main-frame navigation to `url`."""
    engine = get_rule_engine()
    if not hasattr(engine, "evaluate"):
        raise HTTPException(status_code=501, detail="Rule engine does not support evaluation")
    rule = engine.evaluate(url)
    if rule is None:
        return {"url": url, "action": "allow", "rule": None}
    return {"url": url, "action": rule.action.type, "rule": rule}
