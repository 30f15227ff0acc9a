"""cron 스케줄러: 인덱스 정의마다 독립 asyncio 태스크 1개

각 루프는 tick 만큼 쉬고, 고정 시간대(기본 Asia/Seoul)의 현재 시각 기준
다음 cron 발생 시각까지 남은 시간이 [0, tick) 이면 작업을 1회 실행한다.
작업 예외는 루프 경계에서 로그만 남기고 다음 tick 으로 넘어간다.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, tzinfo
from typing import Awaitable, Callable

from apscheduler.triggers.cron import CronTrigger

from .config import IndexDefinition
from .cron import build_cron_trigger
from .log import get_logger

logger = get_logger("scheduler")

TaskFn = Callable[[IndexDefinition], Awaitable[object]]


def should_fire(trigger: CronTrigger, now: datetime, tick: timedelta) -> bool:
    """now 이후(포함) 첫 발생 시각이 tick 안에 들어오면 True"""
    next_fire = trigger.get_next_fire_time(None, now)
    if next_fire is None:
        return False
    delta = next_fire - now
    return timedelta(0) <= delta < tick


class IndexScheduleLoop:
    def __init__(
        self,
        definition: IndexDefinition,
        task_fn: TaskFn,
        tz: tzinfo,
        tick_seconds: float = 0.5,
        clock: Callable[[tzinfo], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.definition = definition
        self.task_fn = task_fn
        self.tz = tz
        self.tick = timedelta(seconds=tick_seconds)
        self.trigger = build_cron_trigger(definition.time, tz)
        self.clock = clock or (lambda zone: datetime.now(zone))
        self.sleep = sleep
        self.runs = 0
        self.failures = 0

    async def step(self) -> bool:
        """tick 1회 평가. 실행했으면 True."""
        now = self.clock(self.tz)
        if not should_fire(self.trigger, now, self.tick):
            return False

        name = self.definition.index_name
        logger.info(f"[cyan][{name}][/cyan] 스케줄 실행 ({self.definition.time})")
        self.runs += 1
        try:
            await self.task_fn(self.definition)
        except Exception:
            self.failures += 1
            logger.exception(f"[red][{name}] 색인 실패[/red]")
        return True

    async def run_forever(self):
        while True:
            await self.sleep(self.tick.total_seconds())
            await self.step()


async def run_schedules(
    definitions: list[IndexDefinition],
    task_fn: TaskFn,
    tz: tzinfo,
    tick_seconds: float = 0.5,
):
    """정의마다 루프 태스크를 띄우고 취소(Ctrl+C)될 때까지 대기"""
    loops = [IndexScheduleLoop(d, task_fn, tz, tick_seconds) for d in definitions]
    tasks = [
        asyncio.create_task(
            loop.run_forever(),
            name=f"schedule:{loop.definition.index_name}:{loop.definition.indexing_type}",
        )
        for loop in loops
    ]
    for loop in loops:
        logger.info(
            f"스케줄 등록: {loop.definition.index_name} "
            f"[{loop.definition.indexing_type}] '{loop.definition.time}'"
        )

    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("스케줄러 종료")
