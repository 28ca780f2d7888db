"""
Centralized Settings Loader

Runtime configuration lives in config/settings.json, created from
config/settings.defaults.json on first use. Keys missing from settings.json
fall back to the defaults file, so older settings files keep working when
new keys are added.

Usage:
    from config.settings_loader import get_allowance, save_settings, settings

    minutes = get_allowance().default_minutes

    settings["allowance"]["default_minutes"] = 5
    save_settings()
"""

import copy
import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

# Paths
CONFIG_DIR = Path(__file__).parent
SETTINGS_FILE = CONFIG_DIR / "settings.json"
DEFAULTS_FILE = CONFIG_DIR / "settings.defaults.json"


# --- Typed sections ---

class StorageSettings(BaseModel):
    path: str = "data/streak/store.json"


class StreakPolicy(BaseModel):
    never_visited_bonus_days: int = Field(0, ge=0)
    seed_default_sites: bool = True


class EnforcementSettings(BaseModel):
    block_priority: int = Field(1, ge=1)
    redirect_priority: int = Field(100, ge=1)
    fallback_redirect_url: str = "http://127.0.0.1:8000/blocked"


class AllowanceSettings(BaseModel):
    default_minutes: int = Field(3, ge=1)
    min_timer_delay_ms: int = Field(1000, ge=0)


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class AppSettings(BaseModel):
    storage: StorageSettings = StorageSettings()
    streak: StreakPolicy = StreakPolicy()
    enforcement: EnforcementSettings = EnforcementSettings()
    allowance: AllowanceSettings = AllowanceSettings()
    server: ServerSettings = ServerSettings()


# --- Settings Cache ---
_settings_cache = None


def _read_json(path: Path) -> dict:
    data = json.loads(path.read_text())
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return data


def _defaults() -> dict:
    return _read_json(DEFAULTS_FILE) if DEFAULTS_FILE.exists() else {}


def merge_into(base: dict, update: dict) -> dict:
    """Recursively copy `update` into `base`; nested dicts are merged key by key."""
    for key, value in update.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict) and value:
            merge_into(base[key], value)
        else:
            base[key] = value
    return base


def validate_settings(data: dict) -> AppSettings:
    """Raise ValueError with pydantic's messages when a section is malformed."""
    try:
        return AppSettings.model_validate(data)
    except ValidationError as e:
        raise ValueError(str(e)) from e


def load_settings() -> dict:
    """Load settings from file. Uses cache if already loaded."""
    global _settings_cache
    if _settings_cache is None:
        merged = _defaults()
        if SETTINGS_FILE.exists():
            merge_into(merged, _read_json(SETTINGS_FILE))
            _settings_cache = merged
        elif DEFAULTS_FILE.exists():
            _settings_cache = merged
            save_settings()  # Create settings.json from defaults
        else:
            raise FileNotFoundError(f"No settings files found in {CONFIG_DIR}")
    return _settings_cache


def save_settings() -> None:
    """Save current settings to file."""
    if _settings_cache is not None:
        SETTINGS_FILE.write_text(json.dumps(_settings_cache, indent=2))


def reset_settings() -> dict:
    """Reset settings to defaults."""
    global _settings_cache
    if DEFAULTS_FILE.exists():
        _settings_cache = _defaults()
        save_settings()
    return _settings_cache


def reload_settings() -> dict:
    """Force reload settings from disk (useful after external changes)."""
    global _settings_cache
    _settings_cache = None
    return load_settings()


def update_settings(changes: dict) -> dict:
    """Merge `changes` into the stored settings and save, refusing invalid results."""
    global _settings_cache
    candidate = merge_into(copy.deepcopy(reload_settings()), changes)
    validate_settings(candidate)
    _settings_cache = candidate
    save_settings()
    return candidate


# --- Convenience Accessors ---

def get_settings() -> AppSettings:
    return validate_settings(load_settings())


def get_storage_path() -> Path:
    return Path(get_settings().storage.path)


def get_streak_policy() -> StreakPolicy:
    return get_settings().streak


def get_enforcement() -> EnforcementSettings:
    return get_settings().enforcement


def get_allowance() -> AllowanceSettings:
    return get_settings().allowance


def get_server() -> ServerSettings:
    return get_settings().server


# --- Initialize on import ---
settings = load_settings()
