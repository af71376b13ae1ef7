"""
EntryRepository: per-user day entries and reading plan progress with JSON persistence.
Path: data/entries.json.

Reading plan progress is stored apart from the day entries, keyed by (user, plan id),
and the most recently updated plan is injected into every entry handed back.
"""
import copy
import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.logger import get_logger
from core.paths import entries_path

logger = get_logger("entry_repository")


def _now() -> str:
    return datetime.now().isoformat()


def _plan_to_wire(plan: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "planId": plan["plan_id"],
        "planName": plan.get("plan_name", ""),
        "currentDay": plan.get("current_day", 1),
        "totalDays": plan.get("total_days", 0),
        "startDate": plan.get("start_date", ""),
        "completedDays": plan.get("completed_days") or [],
    }


class EntryRepository:
    """In-memory entries with JSON persistence, by default at <data_dir>/entries.json."""

    def __init__(self, path: Optional[Path] = None):
        self._path = path if path is not None else entries_path()
        self._entries: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._plans: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._next_id = 1
        self._seq = 0
        self._lock = threading.RLock()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Entries file unreadable, starting empty: %s", e)
            return
        if not isinstance(data, dict):
            return
        self._entries = data.get("entries") or {}
        self._plans = data.get("reading_plans") or {}
        self._next_id = data.get("next_id", 1)
        self._seq = data.get("seq", 0)

    def save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "entries": self._entries,
            "reading_plans": self._plans,
            "next_id": self._next_id,
            "seq": self._seq,
        }
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

    def upsert_entry(self, user_id: str, date_key: str, data_content: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or replace the entry for (user_id, date_key).

        A reading plan with a plan id is also upserted into the plan table.
        """
        with self._lock:
            user_entries = self._entries.setdefault(user_id, {})
            now = _now()
            existing = user_entries.get(date_key)
            if existing:
                existing["data_content"] = data_content
                existing["updated_at"] = now
                entry = existing
            else:
                entry = {
                    "id": self._next_id,
                    "user_id": user_id,
                    "date_key": date_key,
                    "data_content": data_content,
                    "created_at": now,
                    "updated_at": now,
                }
                self._next_id += 1
                user_entries[date_key] = entry

            plan = data_content.get("readingPlan")
            if isinstance(plan, dict) and plan.get("planId"):
                self._upsert_plan(user_id, date_key, plan)

            self.save()
            return copy.deepcopy(entry)

    def _upsert_plan(self, user_id: str, date_key: str, plan: Dict[str, Any]) -> None:
        self._seq += 1
        plans = self._plans.setdefault(user_id, {})
        plan_id = str(plan["planId"])
        stored = plans.get(plan_id, {"plan_id": plan_id, "date_key": date_key, "start_date": plan.get("startDate", "")})
        stored.update({
            "plan_name": plan.get("planName", stored.get("plan_name", "")),
            "current_day": plan.get("currentDay", 1),
            "total_days": plan.get("totalDays", 0),
            "completed_days": plan.get("completedDays") or [],
            "updated_at": _now(),
            "seq": self._seq,
        })
        plans[plan_id] = stored

    def latest_reading_plan(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            plans = list(self._plans.get(user_id, {}).values())
            if not plans:
                return None
            return _plan_to_wire(max(plans, key=lambda p: p.get("seq", 0)))

    def _with_latest_plan(self, entry: Dict[str, Any], plan: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        result = copy.deepcopy(entry)
        if plan:
            content = result.setdefault("data_content", {})
            bible_id = (content.get("readingPlan") or {}).get("bibleId")
            content["readingPlan"] = dict(plan)
            if bible_id is not None:
                content["readingPlan"]["bibleId"] = bible_id
        return result

    def get_entry(self, user_id: str, date_key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(user_id, {}).get(date_key)
            if entry is None:
                return None
            return self._with_latest_plan(entry, self.latest_reading_plan(user_id))

    def list_entries(self, user_id: str, limit: int = 30) -> List[Dict[str, Any]]:
        """Most recent day first."""
        with self._lock:
            plan = self.latest_reading_plan(user_id)
            entries = sorted(
                self._entries.get(user_id, {}).values(),
                key=lambda e: e["date_key"],
                reverse=True,
            )
            return [self._with_latest_plan(e, plan) for e in entries[:limit]]
