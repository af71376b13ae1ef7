"""
Field-by-field reconciliation of partial day data over a base record.

Precedence per field (partial wins only when it is present and well-formed):

- checkIn / soap / leadershipRating: the partial object as a whole; nested keys it
  lacks come from the default template, never from the base record.
- gratitude: the partial list normalized to three slots.
- goals: each bucket on its own; a bucket missing from the partial keeps the base bucket.
- dailyIntention / growthQuestion / deletedGoalIds: the partial value.
- readingPlan: an explicit ``reading_plan`` argument first, then the partial value
  (only when ``include_reading_plan``), then the base.

A malformed field is logged and falls back to the base value.
"""
import json
from typing import Any, Callable, Dict, Optional

from core.logger import get_logger
from core.models import (
    CheckIn,
    DayRecord,
    GoalBucket,
    GoalsByBucket,
    LeadershipRating,
    ReadingPlanProgress,
    SoapStudy,
    empty_day_record,
    goals_from_list,
    normalize_gratitude,
)

logger = get_logger("reconcile")

UNSET: Any = object()

_PARSE_ERRORS = (ValueError, TypeError, KeyError)


def _take(partial: Dict[str, Any], key: str, parse: Callable[[Any], Any], fallback: Any) -> Any:
    value = partial.get(key)
    if value is None:
        return fallback
    try:
        return parse(value)
    except _PARSE_ERRORS as e:
        logger.warning("Ignoring malformed %s: %s", key, e)
        return fallback


def _parse_gratitude(value: Any):
    # legacy rows stored the list joined with ", "
    if isinstance(value, str):
        value = value.split(", ") if value else []
    return normalize_gratitude(value)


def _parse_deleted_ids(value: Any):
    if not isinstance(value, list):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return [str(goal_id) for goal_id in value]


def _parse_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


def _reconcile_goals(raw: Any, base: GoalsByBucket) -> GoalsByBucket:
    if raw is None:
        return base
    # legacy rows stored goals as a JSON string
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            logger.warning("Ignoring malformed goals: %s", e)
            return base
    if not isinstance(raw, dict):
        logger.warning("Ignoring malformed goals: expected an object, got %s", type(raw).__name__)
        return base

    merged = base
    for bucket in GoalBucket:
        merged = merged.with_bucket(
            bucket,
            _take(raw, bucket.value, lambda v, b=bucket: goals_from_list(v, f"goals.{b.value}"), base.get(bucket)),
        )
    return merged


def reconcile(
    partial: Optional[Dict[str, Any]],
    *,
    base: Optional[DayRecord] = None,
    reading_plan: Any = UNSET,
    include_reading_plan: bool = True
) -> DayRecord:
    """
    Merge camel-cased partial day data over ``base`` (default: the empty template).

    Args:
        partial: Raw day data from the remote store or the fallback cache.
        base: Record supplying values for fields the partial lacks.
        reading_plan: When given (even None), overrides any reading plan in ``partial``.
        include_reading_plan: False for sources that must not supply a reading plan.

    Returns:
        A new DayRecord; neither input is mutated.
    """
    if base is None:
        base = empty_day_record()
    if partial is None:
        partial = {}
    elif not isinstance(partial, dict):
        logger.warning("Ignoring malformed day data: expected an object, got %s", type(partial).__name__)
        partial = {}

    if reading_plan is UNSET:
        plan = base.reading_plan
        if include_reading_plan and partial.get("readingPlan"):
            plan = _take(partial, "readingPlan", ReadingPlanProgress.from_dict, base.reading_plan)
    else:
        plan = reading_plan

    return DayRecord(
        check_in=_take(partial, "checkIn", CheckIn.from_dict, base.check_in),
        gratitude=_take(partial, "gratitude", _parse_gratitude, list(base.gratitude)),
        soap=_take(partial, "soap", SoapStudy.from_dict, base.soap),
        goals=_reconcile_goals(partial.get("goals"), base.goals),
        daily_intention=_take(partial, "dailyIntention", _parse_str, base.daily_intention),
        growth_question=_take(partial, "growthQuestion", _parse_str, base.growth_question),
        leadership_rating=_take(partial, "leadershipRating", LeadershipRating.from_dict, base.leadership_rating),
        reading_plan=plan,
        deleted_goal_ids=_take(partial, "deletedGoalIds", _parse_deleted_ids, list(base.deleted_goal_ids)),
    )
