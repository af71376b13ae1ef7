"""
Filesystem locations for Daily Forge runtime data.

    <data_dir>/entries.json    entries service storage (all users)
    <data_dir>/local_cache/    fallback cache, one file per user key

Resolved on every call so DAILY_FORGE_DATA_DIR can change between runs and tests.
"""
import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR_ENV = "DAILY_FORGE_DATA_DIR"


def get_data_dir() -> Path:
    """DAILY_FORGE_DATA_DIR if set, else <project_root>/data."""
    raw = os.getenv(DATA_DIR_ENV, "").strip()
    return Path(raw).expanduser() if raw else PROJECT_ROOT / "data"


def entries_path() -> Path:
    return get_data_dir() / "entries.json"


def local_cache_dir() -> Path:
    return get_data_dir() / "local_cache"
