"""
Core Data Models for Daily Forge.
Defines the day record and everything it holds: check-in, gratitude list, SOAP study,
goals, leadership rating and reading plan progress.
"""
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

GRATITUDE_SLOTS = 3
DEFAULT_LEADERSHIP_SCORE = 5
MIN_LEADERSHIP_SCORE = 1
MAX_LEADERSHIP_SCORE = 10


class Emotion(str, Enum):
    SAD = "sad"
    ANGRY = "angry"
    SCARED = "scared"
    HAPPY = "happy"
    EXCITED = "excited"
    TENDER = "tender"


class GoalCategory(str, Enum):
    SPIRITUAL = "spiritual"
    PERSONAL = "personal"
    OUTREACH = "outreach"
    HEALTH = "health"
    WORK = "work"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GoalBucket(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def _require_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {type(value).__name__}")
    return value


def _require_int(value: Any, name: str) -> int:
    # bool is an int subclass; a JSON true is never a valid score or day number
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def _require_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{name} must be a boolean, got {type(value).__name__}")
    return value


def _require_mapping(value: Any, name: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeError(f"{name} must be an object, got {type(value).__name__}")
    return value


def _require_list(value: Any, name: str) -> list:
    if not isinstance(value, list):
        raise TypeError(f"{name} must be a list, got {type(value).__name__}")
    return value


def normalize_gratitude(items: List[str]) -> List[str]:
    """Pad or truncate to exactly GRATITUDE_SLOTS strings."""
    _require_list(items, "gratitude")
    slots = [_require_str(item, "gratitude item") for item in items[:GRATITUDE_SLOTS]]
    slots.extend([""] * (GRATITUDE_SLOTS - len(slots)))
    return slots


@dataclass
class CheckIn:
    """情绪签到"""
    emotions: List[Emotion] = field(default_factory=list)
    feeling: str = ""

    def is_empty(self) -> bool:
        return not self.emotions and not self.feeling.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emotions": [e.value for e in self.emotions],
            "feeling": self.feeling,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckIn":
        data = _require_mapping(data, "checkIn")
        emotions = _require_list(data.get("emotions") or [], "checkIn.emotions")
        return cls(
            emotions=[Emotion(e) for e in emotions],
            feeling=_require_str(data.get("feeling") or "", "checkIn.feeling"),
        )


@dataclass
class SoapStudy:
    """SOAP 读经记录 (Scripture / Observation / Application / Prayer)"""
    scripture: str = ""
    observation: str = ""
    application: str = ""
    prayer: str = ""
    thoughts: str = ""  # 自由补充，不计入"有内容"判断

    def has_content(self) -> bool:
        return any(
            part.strip()
            for part in (self.scripture, self.observation, self.application, self.prayer)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scripture": self.scripture,
            "observation": self.observation,
            "application": self.application,
            "prayer": self.prayer,
            "thoughts": self.thoughts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SoapStudy":
        data = _require_mapping(data, "soap")
        return cls(**{
            name: _require_str(data.get(name) or "", f"soap.{name}")
            for name in ("scripture", "observation", "application", "prayer", "thoughts")
        })


@dataclass
class Goal:
    """目标 (归属于某一个 bucket)"""
    id: str
    text: str
    category: GoalCategory = GoalCategory.PERSONAL
    priority: GoalPriority = GoalPriority.MEDIUM
    completed: bool = False
    description: Optional[str] = None
    created_at: Optional[str] = None  # ISO 时间戳，由调用方生成

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "category": self.category.value,
            "priority": self.priority.value,
            "completed": self.completed,
        }
        if self.description is not None:
            d["description"] = self.description
        if self.created_at is not None:
            d["createdAt"] = self.created_at
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Goal":
        data = _require_mapping(data, "goal")
        description = data.get("description")
        created_at = data.get("createdAt")
        return cls(
            # ids are opaque; older clients generated numeric ones
            id=str(data["id"]),
            text=_require_str(data.get("text", ""), "goal.text"),
            category=GoalCategory(data.get("category", GoalCategory.PERSONAL.value)),
            priority=GoalPriority(data.get("priority", GoalPriority.MEDIUM.value)),
            completed=_require_bool(data.get("completed", False), "goal.completed"),
            description=_require_str(description, "goal.description") if description is not None else None,
            created_at=_require_str(created_at, "goal.createdAt") if created_at is not None else None,
        )


def goals_from_list(raw: Any, name: str = "goals") -> List[Goal]:
    return [Goal.from_dict(item) for item in _require_list(raw, name)]


@dataclass
class GoalsByBucket:
    daily: List[Goal] = field(default_factory=list)
    weekly: List[Goal] = field(default_factory=list)
    monthly: List[Goal] = field(default_factory=list)

    def get(self, bucket: GoalBucket) -> List[Goal]:
        return getattr(self, GoalBucket(bucket).value)

    def with_bucket(self, bucket: GoalBucket, goals: List[Goal]) -> "GoalsByBucket":
        """Return a copy with one bucket replaced; siblings are shared, not copied."""
        return replace(self, **{GoalBucket(bucket).value: list(goals)})

    def is_empty(self) -> bool:
        return not (self.daily or self.weekly or self.monthly)

    def to_dict(self) -> Dict[str, Any]:
        return {
            bucket.value: [g.to_dict() for g in self.get(bucket)]
            for bucket in GoalBucket
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GoalsByBucket":
        data = _require_mapping(data, "goals")
        return cls(**{
            bucket.value: goals_from_list(data.get(bucket.value) or [], f"goals.{bucket.value}")
            for bucket in GoalBucket
        })


@dataclass
class LeadershipRating:
    wisdom: int = DEFAULT_LEADERSHIP_SCORE
    courage: int = DEFAULT_LEADERSHIP_SCORE
    patience: int = DEFAULT_LEADERSHIP_SCORE
    integrity: int = DEFAULT_LEADERSHIP_SCORE

    def __post_init__(self):
        for name in ("wisdom", "courage", "patience", "integrity"):
            score = _require_int(getattr(self, name), f"leadershipRating.{name}")
            if not MIN_LEADERSHIP_SCORE <= score <= MAX_LEADERSHIP_SCORE:
                raise ValueError(
                    f"leadershipRating.{name} must be within "
                    f"{MIN_LEADERSHIP_SCORE}-{MAX_LEADERSHIP_SCORE}, got {score}"
                )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wisdom": self.wisdom,
            "courage": self.courage,
            "patience": self.patience,
            "integrity": self.integrity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeadershipRating":
        data = _require_mapping(data, "leadershipRating")
        return cls(**{
            name: data.get(name, DEFAULT_LEADERSHIP_SCORE)
            for name in ("wisdom", "courage", "patience", "integrity")
        })


@dataclass
class ReadingPlanProgress:
    """
    阅读计划进度。

    远端存储是唯一可信来源：本地回退缓存永远不保存这个字段。
    """
    plan_id: str
    plan_name: str = ""
    current_day: int = 1
    total_days: int = 0
    start_date: str = ""
    completed_days: List[int] = field(default_factory=list)
    bible_id: Optional[str] = None

    def is_fresh(self, max_age_hours: float, now: Optional[datetime] = None) -> bool:
        """
        Whether start_date lies within max_age_hours of now.

        A plan without a start date has nothing to go stale and counts as fresh;
        an unparseable one does not.
        """
        if not self.start_date:
            return True
        try:
            started = datetime.fromisoformat(self.start_date.replace("Z", "+00:00"))
        except ValueError:
            return False
        if now is None:
            now = datetime.now(started.tzinfo)
        elif (now.tzinfo is None) != (started.tzinfo is None):
            now = now.replace(tzinfo=started.tzinfo)
        age_hours = (now - started).total_seconds() / 3600
        return age_hours <= max_age_hours

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "planId": self.plan_id,
            "planName": self.plan_name,
            "currentDay": self.current_day,
            "totalDays": self.total_days,
            "startDate": self.start_date,
            "completedDays": list(self.completed_days),
        }
        if self.bible_id is not None:
            d["bibleId"] = self.bible_id
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReadingPlanProgress":
        data = _require_mapping(data, "readingPlan")
        plan_id = data.get("planId")
        if plan_id is None or plan_id == "":
            raise ValueError("readingPlan.planId is required")
        bible_id = data.get("bibleId")
        completed = _require_list(data.get("completedDays") or [], "readingPlan.completedDays")
        return cls(
            plan_id=str(plan_id),
            plan_name=_require_str(data.get("planName") or "", "readingPlan.planName"),
            current_day=_require_int(data.get("currentDay", 1), "readingPlan.currentDay"),
            total_days=_require_int(data.get("totalDays", 0), "readingPlan.totalDays"),
            start_date=_require_str(data.get("startDate") or "", "readingPlan.startDate"),
            completed_days=[_require_int(d, "readingPlan.completedDays[]") for d in completed],
            bible_id=str(bible_id) if bible_id is not None else None,
        )


@dataclass
class DayRecord:
    """一天的完整记录，也是同步的最小单位。"""
    check_in: CheckIn = field(default_factory=CheckIn)
    gratitude: List[str] = field(default_factory=lambda: [""] * GRATITUDE_SLOTS)
    soap: SoapStudy = field(default_factory=SoapStudy)
    goals: GoalsByBucket = field(default_factory=GoalsByBucket)
    daily_intention: str = ""
    growth_question: str = ""
    leadership_rating: LeadershipRating = field(default_factory=LeadershipRating)
    reading_plan: Optional[ReadingPlanProgress] = None
    deleted_goal_ids: List[str] = field(default_factory=list)

    def to_dict(self, include_reading_plan: bool = True) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "checkIn": self.check_in.to_dict(),
            "gratitude": list(self.gratitude),
            "soap": self.soap.to_dict(),
            "goals": self.goals.to_dict(),
            "dailyIntention": self.daily_intention,
            "growthQuestion": self.growth_question,
            "leadershipRating": self.leadership_rating.to_dict(),
            "deletedGoalIds": list(self.deleted_goal_ids),
        }
        if include_reading_plan and self.reading_plan is not None:
            d["readingPlan"] = self.reading_plan.to_dict()
        return d

    def snapshot(self) -> str:
        """Canonical serialization used for change detection."""
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DayRecord":
        """Strict parse: any malformed field raises. See core.reconcile for the lenient merge."""
        data = _require_mapping(data, "dayRecord")
        reading_plan = data.get("readingPlan")
        return cls(
            check_in=CheckIn.from_dict(data.get("checkIn") or {}),
            gratitude=normalize_gratitude(data.get("gratitude") or []),
            soap=SoapStudy.from_dict(data.get("soap") or {}),
            goals=GoalsByBucket.from_dict(data.get("goals") or {}),
            daily_intention=_require_str(data.get("dailyIntention") or "", "dailyIntention"),
            growth_question=_require_str(data.get("growthQuestion") or "", "growthQuestion"),
            leadership_rating=LeadershipRating.from_dict(data.get("leadershipRating") or {}),
            reading_plan=ReadingPlanProgress.from_dict(reading_plan) if reading_plan else None,
            deleted_goal_ids=[str(i) for i in _require_list(data.get("deletedGoalIds") or [], "deletedGoalIds")],
        )


def empty_day_record() -> DayRecord:
    """The all-default template; indistinguishable from "no data"."""
    return DayRecord()


def has_meaningful_content(record: DayRecord) -> bool:
    """
    判断记录是否含有真实内容。

    计入：任一感恩项、任一 SOAP 主字段、签到、任一目标、每日意图、成长问题、阅读计划。
    不计入：领导力评分 (总有默认值)、thoughts、待删除目标 id。
    """
    return bool(
        any(item.strip() for item in record.gratitude)
        or record.soap.has_content()
        or not record.check_in.is_empty()
        or not record.goals.is_empty()
        or record.daily_intention.strip()
        or record.growth_question.strip()
        or (record.reading_plan is not None and record.reading_plan.plan_id)
    )
