# Settings Router - Reads and edits config/settings.json
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from config.settings_loader import reload_settings, reset_settings, update_settings

router = APIRouter(tags=["Settings"])

# Every section is read once when the service starts
RESTART_SECTIONS = ("storage", "streak", "enforcement", "allowance", "server")


class UpdateSettingsRequest(BaseModel):
    settings: dict


@router.get("/settings")
async def get_settings():
    """Current settings, re-read from disk."""
    try:
        return {"status": "success", "settings": reload_settings()}
    except (OSError, ValueError) as e:
        raise HTTPException(status_code=500, detail=f"Failed to load settings: {str(e)}")


@router.put("/settings")
async def put_settings(request: UpdateSettingsRequest):
    """Merge the given sections into settings.json.

    Invalid values are rejected with 400 and nothing is written.
    """
    try:
        update_settings(request.settings)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save settings: {str(e)}")

    changed = [name for name in RESTART_SECTIONS if name in request.settings]
    return {
        "status": "success",
        "message": "Settings saved successfully",
        "warnings": [f"'{name}' changes take effect after a restart" for name in changed] or None,
    }


@router.post("/settings/reset")
async def reset_to_defaults():
    """Reset all settings to default values from config/settings.defaults.json"""
    try:
        reset_settings()
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to reset settings: {str(e)}")
    return {"status": "success", "message": "Settings reset to defaults"}
