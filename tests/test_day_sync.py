import asyncio
import json
import logging
from datetime import date

import pytest

from core.day_sync import LOAD_ERROR, SAVE_ERROR, DaySynchronizer, SyncState
from core.exceptions import RemoteUnavailableError
from core.fallback_cache import FallbackCache, MemoryKeyValueStore
from core.models import (
    DayRecord,
    Goal,
    GoalBucket,
    GoalsByBucket,
    ReadingPlanProgress,
    SoapStudy,
    empty_day_record,
)
from core.remote_store import RemoteResult


DEBOUNCE = 0.1
SETTLE = DEBOUNCE * 4
PREFIX = "dailyForge_dayData_"


class FakeRemote:
    """In-memory stand-in for RemoteStore."""

    def __init__(self):
        self.days = {}
        self.plan = None
        self.save_ok = True
        self.fail_load = False
        self.raise_on_load = False
        self.gates = {}
        self.save_gate = None
        self.saves = []
        self.save_log = []
        self.active_saves = 0
        self.max_active_saves = 0
        self.plan_lookups = 0

    async def load(self, user_id, day_key):
        gate = self.gates.get((user_id, day_key))
        if gate is not None:
            await gate.wait()
        if self.raise_on_load:
            raise RemoteUnavailableError("offline", endpoint="/api/entries")
        if self.fail_load:
            return RemoteResult.failure("offline")
        data = self.days.get((user_id, day_key))
        return RemoteResult.found(data) if data else RemoteResult.missing()

    async def save(self, user_id, day_key, record):
        self.saves.append((user_id, day_key, record))
        self.save_log.append(("start", record.daily_intention))
        self.active_saves += 1
        self.max_active_saves = max(self.max_active_saves, self.active_saves)
        try:
            if self.save_gate is not None:
                await self.save_gate.wait()
            if not self.save_ok:
                return RemoteResult.failure("offline")
            self.days[(user_id, day_key)] = record.to_dict()
            return RemoteResult.found()
        finally:
            self.active_saves -= 1
            self.save_log.append(("end", record.daily_intention))

    async def latest_reading_plan(self, user_id):
        self.plan_lookups += 1
        if self.fail_load:
            return RemoteResult.failure("offline")
        return RemoteResult.found(self.plan) if self.plan else RemoteResult.missing()


def _plan() -> ReadingPlanProgress:
    return ReadingPlanProgress(
        plan_id="bible-in-a-year",
        plan_name="Bible in a Year",
        current_day=40,
        total_days=365,
        start_date="2024-01-01",
        completed_days=list(range(1, 40)),
    )


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def cache():
    return FallbackCache(MemoryKeyValueStore(), key_prefix=PREFIX)


@pytest.fixture
def sync(remote, cache):
    return DaySynchronizer(remote, cache, debounce_seconds=DEBOUNCE)


def test_no_remote_or_cache_data_yields_default_template(sync):
    asyncio.run(sync.load("u1", "2024-01-05"))

    assert sync.record == empty_day_record()
    assert sync.record.to_dict()["leadershipRating"] == {"wisdom": 5, "courage": 5, "patience": 5, "integrity": 5}
    assert sync.has_data is False
    assert sync.state == SyncState.READY
    assert sync.error is None


def test_empty_remote_record_picks_up_latest_reading_plan(sync, remote):
    remote.days[("u1", "2024-01-05")] = empty_day_record().to_dict()
    remote.plan = _plan()

    asyncio.run(sync.load("u1", "2024-01-05"))

    assert sync.has_data is True
    assert sync.record.reading_plan == _plan()
    expected = empty_day_record()
    expected.reading_plan = _plan()
    assert sync.record == expected


def test_meaningful_remote_record_skips_plan_lookup_and_sets_baseline(sync, remote):
    remote.days[("u1", "2024-01-05")] = {"soap": {"scripture": "Romans 8:28"}}

    async def scenario():
        await sync.load("u1", "2024-01-05")
        return await sync.manual_save()

    assert asyncio.run(scenario()) is True
    assert sync.record.soap == SoapStudy(scripture="Romans 8:28")
    assert sync.has_data is True
    assert remote.plan_lookups == 0
    # unchanged since load: nothing to write
    assert remote.saves == []


def test_cache_fallback_never_restores_reading_plan(sync, remote, cache):
    cache.store.set(PREFIX + "u1", json.dumps({
        "2024-01-05": {"dailyIntention": "Be kind", "readingPlan": {"planId": "stale", "currentDay": 2}},
    }))

    asyncio.run(sync.load("u1", "2024-01-05"))

    assert sync.record.daily_intention == "Be kind"
    assert sync.record.reading_plan is None
    assert sync.has_data is True


def test_remote_failure_falls_through_to_cache_and_records_error(sync, remote, cache):
    remote.fail_load = True
    cache.write_day("u1", "2024-01-05", DayRecord(gratitude=["Sun", "", ""]))

    asyncio.run(sync.load("u1", "2024-01-05"))

    assert sync.error == LOAD_ERROR
    assert sync.record.gratitude == ["Sun", "", ""]
    assert sync.state == SyncState.READY


def test_raised_remote_error_still_leaves_a_valid_record(sync, remote):
    remote.raise_on_load = True

    asyncio.run(sync.load("u1", "2024-01-05"))

    assert sync.error == LOAD_ERROR
    assert sync.record == empty_day_record()
    assert sync.has_data is False


def test_load_does_not_trigger_autosave(sync, remote):
    remote.days[("u1", "2024-01-05")] = {"gratitude": ["a", "b", "c"]}

    async def scenario():
        await sync.load("u1", "2024-01-05")
        await asyncio.sleep(SETTLE)

    asyncio.run(scenario())

    assert remote.saves == []


def test_five_quick_updates_produce_one_save_with_the_last_value(sync, remote):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        for i in range(5):
            sync.update_daily_intention(f"intention {i}")
            await asyncio.sleep(DEBOUNCE / 10)
        await asyncio.sleep(SETTLE)

    asyncio.run(scenario())

    assert len(remote.saves) == 1
    assert remote.saves[0][2].daily_intention == "intention 4"


def test_gratitude_update_saves_once_with_other_fields_unchanged(sync, remote):
    remote.days[("u1", "2024-01-05")] = {"soap": {"scripture": "Psalm 1"}, "dailyIntention": "Stay rooted"}

    async def scenario():
        await sync.load("u1", "2024-01-05")
        before = sync.record
        sync.update_gratitude(["Coffee", "Health", "Family"])
        await asyncio.sleep(SETTLE)
        return before

    before = asyncio.run(scenario())

    assert len(remote.saves) == 1
    user_id, day_key, saved = remote.saves[0]
    assert (user_id, day_key) == ("u1", "2024-01-05")
    assert saved.gratitude == ["Coffee", "Health", "Family"]
    expected = before.to_dict()
    expected["gratitude"] = ["Coffee", "Health", "Family"]
    assert saved.to_dict() == expected
    assert sync.state == SyncState.READY


def test_failed_save_keeps_baseline_so_identical_update_retries(sync, remote):
    remote.save_ok = False

    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_growth_question("What am I avoiding?")
        await asyncio.sleep(SETTLE)
        assert sync.error == SAVE_ERROR
        remote.save_ok = True
        sync.update_growth_question("What am I avoiding?")
        await asyncio.sleep(SETTLE)

    asyncio.run(scenario())

    assert len(remote.saves) == 2
    assert sync.error is None


def test_identical_content_after_successful_save_is_skipped(sync, remote):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_daily_intention("Serve")
        await asyncio.sleep(SETTLE)
        sync.update_daily_intention("Serve")
        await asyncio.sleep(SETTLE)

    asyncio.run(scenario())

    assert len(remote.saves) == 1


def test_successful_save_backs_up_to_cache_without_reading_plan(sync, remote, cache):
    remote.days[("u1", "2024-01-05")] = {"readingPlan": _plan().to_dict()}

    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_gratitude(["Rain", "", ""])
        await asyncio.sleep(SETTLE)

    asyncio.run(scenario())

    assert remote.saves[0][2].reading_plan == _plan()
    stored = json.loads(cache.store.get(PREFIX + "u1"))
    assert stored["2024-01-05"]["gratitude"] == ["Rain", "", ""]
    assert "readingPlan" not in stored["2024-01-05"]


def test_cache_write_failure_is_not_fatal(remote):
    class FullStore(MemoryKeyValueStore):
        def set(self, key, value):
            raise OSError("quota exceeded")

    sync = DaySynchronizer(remote, FallbackCache(FullStore(), key_prefix=PREFIX), debounce_seconds=DEBOUNCE)

    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_daily_intention("Keep going")
        return await sync.manual_save()

    assert asyncio.run(scenario()) is True
    assert sync.error is None
    assert sync.record.daily_intention == "Keep going"


def test_manual_save_bypasses_debounce(sync, remote):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_soap(SoapStudy(scripture="Micah 6:8"))
        await sync.manual_save()
        assert len(remote.saves) == 1
        await asyncio.sleep(SETTLE)

    asyncio.run(scenario())

    assert len(remote.saves) == 1


def test_day_change_flushes_pending_save_to_previous_day(sync, remote):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_daily_intention("Finish strong")
        await sync.load("u1", "2024-01-06")
        await asyncio.sleep(SETTLE)

    asyncio.run(scenario())

    assert [(u, d) for u, d, _ in remote.saves] == [("u1", "2024-01-05")]
    assert remote.saves[0][2].daily_intention == "Finish strong"
    assert sync.day_key == "2024-01-06"
    assert sync.record.daily_intention == ""


def test_superseded_load_does_not_overwrite_newer_day(sync, remote):
    remote.days[("u1", "2024-01-05")] = {"dailyIntention": "old day"}
    remote.days[("u1", "2024-01-06")] = {"dailyIntention": "new day"}

    async def scenario():
        gate = asyncio.Event()
        remote.gates[("u1", "2024-01-05")] = gate
        slow = asyncio.create_task(sync.load("u1", "2024-01-05"))
        await asyncio.sleep(0)
        await sync.load("u1", "2024-01-06")
        gate.set()
        await slow

    asyncio.run(scenario())

    assert sync.record.daily_intention == "new day"
    assert sync.state == SyncState.READY


def test_updates_mark_state_saving_until_flushed(sync, remote):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_goals(GoalBucket.DAILY, [Goal(id="g1", text="Pray")])
        assert sync.state == SyncState.SAVING
        assert sync.has_data is True
        await sync.flush()
        assert sync.state == SyncState.READY

    asyncio.run(scenario())

    assert len(remote.saves) == 1


def test_update_goals_replaces_only_its_bucket(sync):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_goals(GoalBucket.DAILY, [Goal(id="d1", text="Pray")])
        sync.update_goals(GoalBucket.WEEKLY, [Goal(id="w1", text="Serve")])
        await sync.close()

    asyncio.run(scenario())

    assert [g.id for g in sync.record.goals.daily] == ["d1"]
    assert [g.id for g in sync.record.goals.weekly] == ["w1"]


def test_mark_goal_deleted_moves_id_to_deleted_list(sync):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.set_record(lambda prev: DayRecord(goals=GoalsByBucket(
            daily=[Goal(id="d1", text="Pray"), Goal(id="d2", text="Fast")],
            monthly=[Goal(id="m1", text="Read")],
        )))
        sync.mark_goal_deleted("d2")
        sync.mark_goal_deleted("d2")
        await sync.close()

    asyncio.run(scenario())

    assert [g.id for g in sync.record.goals.daily] == ["d1"]
    assert [g.id for g in sync.record.goals.monthly] == ["m1"]
    assert sync.record.deleted_goal_ids == ["d2"]


def test_missing_identity_uses_empty_record_and_never_saves(sync, remote):
    async def scenario():
        await sync.load(None, "2024-01-05")
        sync.update_daily_intention("typed before login")
        await asyncio.sleep(SETTLE)
        return await sync.manual_save()

    assert asyncio.run(scenario()) is False
    assert remote.saves == []
    assert sync.error is None
    assert sync.state == SyncState.IDLE


def test_start_session_scrubs_stale_reading_plans_once(sync, cache):
    cache.store.set(PREFIX + "u1", json.dumps({
        "2024-01-01": {"readingPlan": {"planId": "stale"}, "dailyIntention": "x"},
    }))

    asyncio.run(sync.start_session("u1", "2024-01-05"))

    stored = json.loads(cache.store.get(PREFIX + "u1"))
    assert stored == {"2024-01-01": {"dailyIntention": "x"}}


def test_edit_during_day_change_flush_reaches_previous_day(sync, remote):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        sync.update_daily_intention("first")
        remote.save_gate = asyncio.Event()
        switching = asyncio.create_task(sync.load("u1", "2024-01-06"))
        await asyncio.sleep(0.01)
        sync.update_daily_intention("second")
        remote.save_gate.set()
        await switching
        await asyncio.sleep(SETTLE)

    asyncio.run(scenario())

    assert [(u, d, r.daily_intention) for u, d, r in remote.saves] == [
        ("u1", "2024-01-05", "first"),
        ("u1", "2024-01-05", "second"),
    ]
    assert sync.day_key == "2024-01-06"
    assert sync.record.daily_intention == ""
    assert sync.state == SyncState.READY


def test_timer_save_and_manual_save_never_overlap(sync, remote):
    async def scenario():
        await sync.load("u1", "2024-01-05")
        remote.save_gate = asyncio.Event()
        sync.update_daily_intention("timer")
        await asyncio.sleep(DEBOUNCE * 2)
        assert remote.active_saves == 1

        sync.update_daily_intention("manual")
        manual = asyncio.create_task(sync.manual_save())
        flushing = asyncio.create_task(sync.flush())
        await asyncio.sleep(0.01)
        assert remote.save_log == [("start", "timer")]
        assert not flushing.done()

        remote.save_gate.set()
        await flushing
        assert ("end", "timer") in remote.save_log
        return await manual

    assert asyncio.run(scenario()) is True
    assert remote.save_log == [
        ("start", "timer"), ("end", "timer"),
        ("start", "manual"), ("end", "manual"),
    ]
    assert remote.max_active_saves == 1
    assert sync.state == SyncState.READY


def test_stale_latest_reading_plan_logs_warning(sync, remote, caplog):
    remote.plan = _plan()

    with caplog.at_level(logging.WARNING, logger="daily_forge.day_sync"):
        asyncio.run(sync.load("u1", "2024-01-05"))

    assert sync.record.reading_plan == _plan()
    assert any("might be stale" in r.getMessage() for r in caplog.records)


def test_stale_plan_on_remote_record_logs_warning(sync, remote, caplog):
    remote.days[("u1", "2024-01-05")] = {
        "dailyIntention": "Keep going",
        "readingPlan": _plan().to_dict(),
    }

    with caplog.at_level(logging.WARNING, logger="daily_forge.day_sync"):
        asyncio.run(sync.load("u1", "2024-01-05"))

    assert sync.record.reading_plan.plan_id == "bible-in-a-year"
    assert any("might be stale" in r.getMessage() for r in caplog.records)


def test_fresh_reading_plan_loads_without_warning(sync, remote, caplog):
    plan = _plan()
    plan.start_date = date.today().isoformat()
    remote.plan = plan

    with caplog.at_level(logging.WARNING, logger="daily_forge.day_sync"):
        asyncio.run(sync.load("u1", "2024-01-05"))

    assert sync.record.reading_plan == plan
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
