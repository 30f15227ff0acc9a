"""cron 평가 + 스케줄 루프"""

import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from index_sync.config import IndexDefinition
from index_sync.cron import build_cron_trigger, split_cron_fields
from index_sync.errors import ConfigurationError
from index_sync.scheduler import IndexScheduleLoop, run_schedules, should_fire

KST = ZoneInfo("Asia/Seoul")
TICK = timedelta(milliseconds=500)


def _definition(cron: str = "0 0 12 * * *") -> IndexDefinition:
    return IndexDefinition(
        index_name="stores",
        time=cron,
        indexing_type="dynamic",
        function_name="store_dynamic_index",
        sql_batch_size=10,
        es_batch_size=10,
    )


# ============================================================
# cron 표현식
# ============================================================
def test_split_cron_fields_variants():
    assert split_cron_fields("0 0 12 * * ?")["day_of_week"] == "*"
    assert split_cron_fields("*/5 * * * *")["second"] == "0"
    assert split_cron_fields("0 0 12 * * * 2027")["year"] == "2027"


@pytest.mark.parametrize("expr", ["", "* *", "61 0 12 * * *", "0 0 25 * * *"])
def test_invalid_cron_is_configuration_error(expr):
    with pytest.raises(ConfigurationError):
        build_cron_trigger(expr, KST)


# ============================================================
# 실행 판정
# ============================================================
def test_fires_within_tick_before_occurrence():
    trigger = build_cron_trigger("0 0 12 * * *", KST)
    now = datetime(2026, 3, 1, 11, 59, 59, 600000, tzinfo=KST)

    assert should_fire(trigger, now, TICK)


def test_does_not_fire_after_occurrence_passed():
    trigger = build_cron_trigger("0 0 12 * * *", KST)
    now = datetime(2026, 3, 1, 12, 0, 0, 100000, tzinfo=KST)

    assert not should_fire(trigger, now, TICK)


def test_does_not_fire_outside_tick():
    trigger = build_cron_trigger("0 0 12 * * *", KST)
    now = datetime(2026, 3, 1, 11, 59, 59, 400000, tzinfo=KST)

    assert not should_fire(trigger, now, TICK)


def test_cron_is_evaluated_in_configured_timezone():
    """12:00 KST == 03:00 UTC"""
    trigger = build_cron_trigger("0 0 12 * * *", KST)
    now_utc = datetime(2026, 3, 1, 2, 59, 59, 800000, tzinfo=ZoneInfo("UTC"))

    assert should_fire(trigger, now_utc.astimezone(KST), TICK)


# ============================================================
# 루프
# ============================================================
class _StopLoop(Exception):
    pass


def _scripted(times: list[datetime]):
    """정해진 시각 목록을 차례로 돌려주고, 다 쓰면 루프를 멈추는 clock/sleep 쌍"""
    remaining = list(times)

    def clock(tz):
        return remaining.pop(0)

    async def sleep(seconds):
        if not remaining:
            raise _StopLoop()

    return clock, sleep


def test_loop_fires_once_around_occurrence():
    base = datetime(2026, 3, 1, 11, 59, 58, 600000, tzinfo=KST)
    times = [base + TICK * i for i in range(6)]
    clock, sleep = _scripted(times)
    fired = []

    async def task(definition):
        fired.append(definition.index_name)

    loop = IndexScheduleLoop(_definition(), task, KST, 0.5, clock=clock, sleep=sleep)
    with pytest.raises(_StopLoop):
        asyncio.run(loop.run_forever())

    assert fired == ["stores"]
    assert loop.runs == 1


def test_task_error_is_logged_and_loop_continues():
    base = datetime(2026, 3, 1, 11, 59, 59, 600000, tzinfo=KST)
    times = [base, base + timedelta(days=1)]
    clock, sleep = _scripted(times)
    attempts = []

    async def task(definition):
        attempts.append(1)
        raise RuntimeError("db down")

    loop = IndexScheduleLoop(_definition(), task, KST, 0.5, clock=clock, sleep=sleep)
    with pytest.raises(_StopLoop):
        asyncio.run(loop.run_forever())

    assert len(attempts) == 2
    assert loop.failures == 2


def test_run_schedules_cancels_loops_on_cancel():
    async def _run():
        async def task(definition):
            pass

        runner = asyncio.create_task(
            run_schedules([_definition(), _definition("0 0 4 * * *")], task, KST, 0.01)
        )
        await asyncio.sleep(0.05)
        runner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await runner
        return [t for t in asyncio.all_tasks() if t.get_name().startswith("schedule:")]

    assert asyncio.run(_run()) == []


def test_hourly_cron_fires_once_per_hour():
    """'0 0 * * * *' + 500ms tick: 11:59:59.6 부터 한 시간 동안 정확히 1회"""
    trigger = build_cron_trigger("0 0 * * * *", KST)
    start = datetime(2026, 3, 1, 11, 59, 59, 600000, tzinfo=KST)

    fired = [
        start + TICK * i
        for i in range(int(timedelta(hours=1) / TICK))
        if should_fire(trigger, start + TICK * i, TICK)
    ]

    assert fired == [start]
