"""
Durable Fallback Cache for Daily Forge.

Keeps a per-user JSON map of day key -> partial day record in a key-value store.
Used as a write-through backup after successful remote saves and as the last resort
when the remote store has nothing for a day.

The cache is authoritative for every day field except ``readingPlan``: that field is
stripped on every read and every write.
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote

from core.exceptions import CacheWriteError
from core.logger import get_logger
from core.models import DayRecord
from core.paths import local_cache_dir

logger = get_logger("fallback_cache")

READING_PLAN_FIELD = "readingPlan"


class KeyValueStore(Protocol):
    """Protocol for string key-value storage (browser-local storage equivalent)."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """Dict-backed store for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """One file per key under ``directory``; file names are the percent-encoded key."""

    def __init__(self, directory: Optional[Path] = None):
        self._dir = Path(directory) if directory is not None else local_cache_dir()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


def _strip_reading_plan(day: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in day.items() if k != READING_PLAN_FIELD}


class FallbackCache:
    """Per-user day map over a KeyValueStore."""

    def __init__(self, store: KeyValueStore, key_prefix: Optional[str] = None):
        if key_prefix is None:
            from core.config_manager import config
            key_prefix = config.CACHE_KEY_PREFIX
        self.store = store
        self.key_prefix = key_prefix

    def user_key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    def _read_map(self, user_id: str) -> Dict[str, Any]:
        key = self.user_key(user_id)
        try:
            raw = self.store.get(key)
        except OSError as e:
            logger.warning("Fallback cache unreadable for %s: %s", key, e)
            return {}
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Fallback cache corrupted for %s: %s", key, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Fallback cache for %s is not a map, ignoring", key)
            return {}
        return data

    def _write_map(self, user_id: str, data: Dict[str, Any]) -> None:
        key = self.user_key(user_id)
        try:
            payload = json.dumps(data, ensure_ascii=False)
            self.store.set(key, payload)
        except (TypeError, ValueError, OSError) as e:
            raise CacheWriteError(f"Failed to write fallback cache: {e}", cache_key=key) from e

    def read_day(self, user_id: str, day_key: str) -> Optional[Dict[str, Any]]:
        """
        Read the partial record for one day.

        Returns:
            The stored fields without ``readingPlan``, or None when nothing usable is stored.
        """
        day = self._read_map(user_id).get(day_key)
        if not isinstance(day, dict):
            return None
        stripped = _strip_reading_plan(day)
        return stripped or None

    def write_day(self, user_id: str, day_key: str, record: DayRecord) -> None:
        """
        Store ``record`` under ``day_key`` (minus ``readingPlan``) and persist the whole map.

        Raises:
            CacheWriteError: serialization or storage failed.
        """
        data = self._read_map(user_id)
        data[day_key] = record.to_dict(include_reading_plan=False)
        self._write_map(user_id, data)

    def clear_reading_plan_field(self, user_id: str) -> bool:
        """
        Scrub ``readingPlan`` from every stored day of ``user_id``.

        Returns:
            True if anything was removed and the map rewritten.
        """
        data = self._read_map(user_id)
        changed = False
        for day_key, day in data.items():
            if isinstance(day, dict) and READING_PLAN_FIELD in day:
                data[day_key] = _strip_reading_plan(day)
                changed = True
        if changed:
            self._write_map(user_id, data)
            logger.info("Cleared stale reading plan data from fallback cache for user %s", user_id)
        return changed
