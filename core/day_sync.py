"""
Day-Entry Synchronizer for Daily Forge.

维护 (user, day) 对应的唯一内存记录：
- 懒加载：远端记录 → 最新阅读计划 → 本地回退缓存 → 空模板
- 本地编辑：按字段做函数式更新，不修改旧记录
- 防抖保存：最后一次编辑后静默 SAVE_DEBOUNCE_SECONDS 才写远端
- 保存成功后写回本地回退缓存 (不含阅读计划)

状态流转: idle → loading → ready ⇄ saving

所有更新方法必须在事件循环内调用 (防抖计时器依赖 running loop)。
"""
import asyncio
from dataclasses import replace
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set, Union

from core.exceptions import CacheWriteError, RemoteUnavailableError
from core.fallback_cache import FallbackCache
from core.logger import get_logger
from core.models import (
    CheckIn,
    DayRecord,
    Goal,
    GoalBucket,
    ReadingPlanProgress,
    SoapStudy,
    empty_day_record,
    has_meaningful_content,
    normalize_gratitude,
)
from core.reconcile import reconcile
from core.remote_store import RemoteResult, RemoteStore

logger = get_logger("day_sync")

LOAD_ERROR = "Failed to load data"
SAVE_ERROR = "Failed to save data"

RecordUpdate = Union[DayRecord, Callable[[DayRecord], DayRecord]]


class SyncState(str, Enum):
    IDLE = "idle"          # 未加载 / 无身份
    LOADING = "loading"    # 加载中
    READY = "ready"        # 记录在内存中
    SAVING = "saving"      # 防抖计时中或保存进行中


class DaySynchronizer:
    """
    单条日记录的同步器。

    Args:
        remote: 远端存储客户端
        cache: 本地回退缓存
        debounce_seconds: 防抖窗口，默认取 config.SAVE_DEBOUNCE_SECONDS
        plan_max_age_hours: 阅读计划新鲜度窗口，默认取 config.READING_PLAN_MAX_AGE_HOURS
    """

    def __init__(
        self,
        remote: RemoteStore,
        cache: FallbackCache,
        debounce_seconds: Optional[float] = None,
        plan_max_age_hours: Optional[float] = None
    ):
        from core.config_manager import config
        if debounce_seconds is None:
            debounce_seconds = config.SAVE_DEBOUNCE_SECONDS
        if plan_max_age_hours is None:
            plan_max_age_hours = config.READING_PLAN_MAX_AGE_HOURS

        self.remote = remote
        self.cache = cache
        self.debounce_seconds = debounce_seconds
        self.plan_max_age_hours = plan_max_age_hours

        self._record = empty_day_record()
        self._state = SyncState.IDLE
        self._has_data = False
        self._error: Optional[str] = None
        self._user_id: Optional[str] = None
        self._day_key: Optional[str] = None

        # 上次成功保存的序列化快照，仅对当前身份有效
        self._baseline: Optional[str] = None
        self._initial_load = False
        self._load_generation = 0

        self._save_handle: Optional[asyncio.TimerHandle] = None
        self._save_tasks: Set[asyncio.Task] = set()
        self._save_lock = asyncio.Lock()
        self._cleaned_users: Set[str] = set()

    # --- 只读状态 ---

    @property
    def record(self) -> DayRecord:
        return self._record

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def has_data(self) -> bool:
        return self._has_data

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._state == SyncState.LOADING

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def day_key(self) -> Optional[str]:
        return self._day_key

    # --- 加载 ---

    async def start_session(self, user_id: Optional[str], day_key: Optional[str]) -> None:
        """首次进入时清理本地缓存中的旧阅读计划，然后加载。"""
        if user_id and user_id not in self._cleaned_users:
            try:
                self.cache.clear_reading_plan_field(user_id)
            except CacheWriteError as e:
                logger.warning("Could not scrub reading plans from fallback cache: %s", e.message)
            self._cleaned_users.add(user_id)
        await self.load(user_id, day_key)

    async def load(self, user_id: Optional[str], day_key: Optional[str]) -> None:
        """
        加载 (user_id, day_key) 的记录。

        切换身份时，旧身份上挂起的防抖保存会立即执行 (写回旧的那一天)，
        不会在切换之后迟到触发。加载期间的编辑会被加载结果覆盖。
        """
        if (user_id, day_key) != (self._user_id, self._day_key):
            await self._flush_pending()
            self._cancel_timer()

        self._load_generation += 1
        generation = self._load_generation
        self._user_id, self._day_key = user_id, day_key
        self._baseline = None

        if not user_id or not day_key:
            logger.debug("No user id or day key, using empty record")
            self._record = empty_day_record()
            self._has_data = False
            self._state = SyncState.IDLE
            return

        self._state = SyncState.LOADING
        self._error = None
        self._initial_load = True
        try:
            record, has_data, baseline = await self._resolve(user_id, day_key)
            if generation != self._load_generation:
                logger.debug("Discarding superseded load for %s/%s", user_id, day_key)
                return
            self._record = record
            self._has_data = has_data
            self._baseline = baseline
        finally:
            if generation == self._load_generation:
                self._initial_load = False
                self._state = SyncState.READY

    async def _resolve(self, user_id: str, day_key: str):
        """Return (record, has_data, baseline snapshot)."""
        result = await self._call_remote(self.remote.load(user_id, day_key))
        data = None
        if result.failed:
            self._error = LOAD_ERROR
        elif result.ok:
            data = result.data
            merged = reconcile(data)
            if has_meaningful_content(merged):
                logger.info("Loaded %s/%s from remote store", user_id, day_key)
                self._warn_if_stale(merged.reading_plan)
                return merged, True, merged.snapshot()

        # 阅读计划以远端为准：当天没有时取最新进度
        if not data or not data.get("readingPlan"):
            plan_result = await self._call_remote(self.remote.latest_reading_plan(user_id))
            if plan_result.failed:
                self._error = LOAD_ERROR
            elif plan_result.ok:
                merged = reconcile(data, reading_plan=plan_result.data)
                logger.info("Loaded %s/%s with latest reading plan %s", user_id, day_key, plan_result.data.plan_id)
                self._warn_if_stale(plan_result.data)
                return merged, True, merged.snapshot()

        local = self.cache.read_day(user_id, day_key)
        if local:
            logger.info("Loaded %s/%s from fallback cache", user_id, day_key)
            return reconcile(local, include_reading_plan=False), True, None

        return empty_day_record(), False, None

    def _warn_if_stale(self, plan: Optional[ReadingPlanProgress]) -> None:
        """只提示，不影响加载结果。"""
        if plan is not None and not plan.is_fresh(self.plan_max_age_hours):
            logger.warning(
                "Reading plan %s might be stale (started %s, window %sh)",
                plan.plan_id, plan.start_date, self.plan_max_age_hours,
            )

    @staticmethod
    async def _call_remote(call: Awaitable[RemoteResult]) -> RemoteResult:
        try:
            return await call
        except RemoteUnavailableError as e:
            return RemoteResult.failure(e.message)

    # --- 更新 ---

    def set_record(self, value: RecordUpdate) -> None:
        """替换整条记录或传入 prev -> new 的函数；加载期间不触发保存。"""
        new_record = value(self._record) if callable(value) else value
        self._record = new_record
        if has_meaningful_content(new_record):
            self._has_data = True
        if not self._initial_load:
            self._schedule_save()

    def update_check_in(self, check_in: CheckIn) -> None:
        self.set_record(lambda prev: replace(prev, check_in=check_in))

    def update_gratitude(self, gratitude: List[str]) -> None:
        items = normalize_gratitude(gratitude)
        self.set_record(lambda prev: replace(prev, gratitude=items))

    def update_soap(self, soap: SoapStudy) -> None:
        self.set_record(lambda prev: replace(prev, soap=soap))

    def update_goals(self, bucket: GoalBucket, goals: List[Goal]) -> None:
        self.set_record(lambda prev: replace(prev, goals=prev.goals.with_bucket(bucket, goals)))

    def update_daily_intention(self, intention: str) -> None:
        self.set_record(lambda prev: replace(prev, daily_intention=intention))

    def update_growth_question(self, question: str) -> None:
        self.set_record(lambda prev: replace(prev, growth_question=question))

    def mark_goal_deleted(self, goal_id: str) -> None:
        """从所在 bucket 移除目标，并记入 deletedGoalIds 等待远端清理。"""
        def _apply(prev: DayRecord) -> DayRecord:
            goals = prev.goals
            for bucket in GoalBucket:
                kept = [g for g in goals.get(bucket) if g.id != goal_id]
                if len(kept) != len(goals.get(bucket)):
                    goals = goals.with_bucket(bucket, kept)
            deleted = list(prev.deleted_goal_ids)
            if goal_id not in deleted:
                deleted.append(goal_id)
            return replace(prev, goals=goals, deleted_goal_ids=deleted)

        self.set_record(_apply)

    # --- 保存 ---

    def _cancel_timer(self) -> None:
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None

    def _schedule_save(self) -> None:
        if not self._user_id or not self._day_key:
            return
        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self._save_handle = loop.call_later(self.debounce_seconds, self._on_timer)
        self._state = SyncState.SAVING

    def _on_timer(self) -> None:
        self._save_handle = None
        task = asyncio.ensure_future(self._save(self._user_id, self._day_key, self._record))
        self._save_tasks.add(task)
        task.add_done_callback(self._save_tasks.discard)

    async def _save(self, user_id: str, day_key: str, record: DayRecord) -> bool:
        """
        保存一次。与当前身份的基线快照相同则跳过。

        Returns:
            True 表示远端已是最新 (保存成功或无需保存)。
        """
        async with self._save_lock:
            is_current = (user_id, day_key) == (self._user_id, self._day_key)
            snapshot = record.snapshot()
            if is_current and snapshot == self._baseline:
                logger.debug("No changes detected for %s/%s, skipping save", user_id, day_key)
                self._settle_state()
                return True

            self._state = SyncState.SAVING
            result = await self._call_remote(self.remote.save(user_id, day_key, record))
            try:
                if not result.ok:
                    logger.error("Failed to save %s/%s: %s", user_id, day_key, result.error)
                    self._error = SAVE_ERROR
                    return False

                if (user_id, day_key) == (self._user_id, self._day_key):
                    self._baseline = snapshot
                    self._error = None
                logger.info("Saved %s/%s", user_id, day_key)

                try:
                    self.cache.write_day(user_id, day_key, record)
                except CacheWriteError as e:
                    logger.warning("Fallback cache backup failed: %s", e.message)
                return True
            finally:
                self._settle_state()

    def _settle_state(self) -> None:
        if self._state == SyncState.SAVING and self._save_handle is None:
            self._state = SyncState.READY

    async def manual_save(self) -> bool:
        """立即保存当前记录，跳过防抖。"""
        self._cancel_timer()
        if not self._user_id or not self._day_key:
            self._settle_state()
            return False
        return await self._save(self._user_id, self._day_key, self._record)

    async def _flush_pending(self) -> None:
        # 保存进行中的编辑会重新挂起计时器，循环直到没有挂起的保存
        while self._save_handle is not None:
            self._cancel_timer()
            await self._save(self._user_id, self._day_key, self._record)

    async def flush(self) -> None:
        """立即执行挂起的防抖保存，并等待进行中的保存结束。"""
        await self._flush_pending()
        if self._save_tasks:
            await asyncio.gather(*list(self._save_tasks))

    async def close(self) -> None:
        """Flush and release; no timer survives close()."""
        await self.flush()
        self._cancel_timer()
