from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Header, HTTPException, Query, Request
from pydantic import BaseModel

from core.entry_repository import EntryRepository

router = APIRouter()


class EntryRequest(BaseModel):
    # 字段名与前端 JSON 保持一致 (camelCase)
    date: Optional[str] = None
    checkIn: Optional[Dict[str, Any]] = None
    gratitude: Optional[List[str]] = None
    soap: Optional[Dict[str, Any]] = None
    goals: Optional[Dict[str, Any]] = None
    dailyIntention: Optional[str] = None
    growthQuestion: Optional[str] = None
    leadershipRating: Optional[Dict[str, Any]] = None
    readingPlan: Optional[Dict[str, Any]] = None
    deletedGoalIds: Optional[List[str]] = None
    completed: Optional[bool] = None


def _repository(request: Request) -> EntryRepository:
    return request.app.state.entry_repository


def _require_user(x_user_id: Optional[str]) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity")
    return x_user_id.strip()


def _validate_date_key(date_key: str) -> str:
    try:
        date.fromisoformat(date_key)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date key: {date_key}")
    return date_key


@router.post("")
def save_entry(
    req: EntryRequest,
    request: Request,
    x_user_id: Optional[str] = Header(None),
):
    """
    保存某一天的完整记录 (upsert)。
    带 planId 的阅读计划同时写入阅读计划表。
    """
    user_id = _require_user(x_user_id)
    date_key = _validate_date_key(req.date or date.today().isoformat())
    data_content = req.model_dump(exclude={"date"}, exclude_none=True)

    entry = _repository(request).upsert_entry(user_id, date_key, data_content)
    return {"success": True, "entry": entry}


@router.get("")
def list_entries(
    request: Request,
    limit: int = Query(30, ge=1, le=366),
    x_user_id: Optional[str] = Header(None),
):
    user_id = _require_user(x_user_id)
    entries = _repository(request).list_entries(user_id, limit=limit)
    return {"success": True, "entries": entries}


@router.get("/{date_key}")
def get_entry(
    date_key: str,
    request: Request,
    x_user_id: Optional[str] = Header(None),
):
    """单日记录；不存在时 entry 为 null (不是 404)。"""
    user_id = _require_user(x_user_id)
    entry = _repository(request).get_entry(user_id, _validate_date_key(date_key))
    return {"success": True, "entry": entry}
