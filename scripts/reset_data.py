"""
Clear Streak's stored data.

Usage:
    python scripts/reset_data.py                 # store path from settings
    python scripts/reset_data.py --path data/streak/store.json
    python scripts/reset_data.py --visits-only   # keep sites, drop visit history
"""
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent))

from shared.state import PROJECT_ROOT
from streak.store import LAST_VISITS, VISITS, JsonFileStore


def resolve_path(value: str = None) -> Path:
    if value:
        return Path(value)
    from config.settings_loader import get_storage_path
    path = get_storage_path()
    return path if path.is_absolute() else PROJECT_ROOT / path


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Clear Streak's stored data")
    parser.add_argument("--path", help="Store file to clear (defaults to storage.path from settings)")
    parser.add_argument("--visits-only", action="store_true", help="Only clear visit days and last-visit instants")
    args = parser.parse_args(argv)

    path = resolve_path(args.path)
    if not path.exists():
        print(f"Nothing to remove. No store file at {path}")
        return 0

    store = JsonFileStore(path)
    if args.visits_only:
        asyncio.run(store.set({VISITS: {}, LAST_VISITS: {}}))
        print(f"Visit history cleared in {path}")
    else:
        store.clear()
        print(f"Streak data cleared: {path}")
    print("Restart the service to pick up the change.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
