"""실행 모드: schedule(데몬) / cli(대화형 1회 실행)

schedule: 인덱스 정의마다 cron 루프를 띄우고 Ctrl+C 까지 실행
cli:      번호로 인덱스를 골라 1회 실행 후 성공/실패 출력
"""

from __future__ import annotations

import asyncio
from typing import Callable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Config, IndexDefinition
from .context import AppContext
from .log import get_logger
from .scheduler import run_schedules
from .tasks import IndexingTasks, TaskResult

console = Console()
logger = get_logger("cli")

COMPLETED_MESSAGE = "Indexing operation completed."
FAILED_MESSAGE = "Index failed."


# ============================================================
# 대화형 메뉴
# ============================================================
def _menu_table(definitions: list[IndexDefinition]) -> Table:
    table = Table(title="색인 대상", border_style="dim")
    table.add_column("#", justify="right", style="bold")
    table.add_column("index_name", style="cyan")
    table.add_column("indexing_type")
    table.add_column("cron", style="dim")
    for i, d in enumerate(definitions, start=1):
        table.add_row(str(i), d.index_name, d.indexing_type, d.time)
    return table


def _summary_table(result: TaskResult) -> Table:
    """결과 요약 Rich Table"""
    table = Table(title="결과 요약", show_header=False, border_style="dim")
    table.add_column("항목", style="bold")
    table.add_column("값", justify="right", style="cyan")
    table.add_row("인덱스", result.index_name)
    table.add_row("핸들러", result.function_name)
    for label, count in result.counts.items():
        table.add_row(label, f"{count:,}")
    if result.new_index:
        table.add_row("새 물리 인덱스", result.new_index)
    table.add_row("워터마크 갱신", "예" if result.watermark_advanced else "아니오")
    table.add_row("Wall time", f"{result.elapsed_sec:.1f}초")
    return table


def choose_definition(
    definitions: list[IndexDefinition],
    ask: Callable[[str], str],
    out: Console = console,
) -> IndexDefinition:
    """올바른 번호가 입력될 때까지 반복해서 묻는다."""
    out.print(_menu_table(definitions))
    while True:
        raw = ask("실행할 인덱스 번호: ").strip()
        if not raw.isdigit():
            out.print(f"[red]숫자를 입력하세요:[/red] {raw!r}")
            continue
        number = int(raw)
        if not 1 <= number <= len(definitions):
            out.print(f"[red]1 ~ {len(definitions)} 사이 번호를 입력하세요:[/red] {number}")
            continue
        return definitions[number - 1]


async def run_once(
    tasks: IndexingTasks, definition: IndexDefinition, out: Console = console
) -> bool:
    """정의 1건 실행. 성공 여부를 반환하고 결과 메시지를 출력."""
    try:
        result = await tasks.run(definition)
    except Exception:
        logger.exception(f"[red][{definition.index_name}] 색인 실패[/red]")
        out.print(f"[bold red]{FAILED_MESSAGE}[/bold red]")
        return False

    out.print(_summary_table(result))
    out.print(f"[bold green]{COMPLETED_MESSAGE}[/bold green]")
    return True


# ============================================================
# 모드별 진입점
# ============================================================
async def _run_schedule_mode(ctx: AppContext):
    try:
        await run_schedules(
            ctx.definitions,
            ctx.tasks.run,
            ctx.config.tz(),
            ctx.config.tick_seconds,
        )
    finally:
        await ctx.close()


async def run_interactive(
    tasks: IndexingTasks,
    definitions: list[IndexDefinition],
    ask: Callable[[str], str],
    out: Console = console,
) -> bool:
    """메뉴 선택 후 1회 실행. 입력 도중 EOF / Ctrl+C 는 실패로 처리."""
    try:
        definition = choose_definition(definitions, ask, out)
    except (EOFError, KeyboardInterrupt):
        logger.warning("입력 중단: 실행하지 않고 종료")
        out.print(f"[bold red]{FAILED_MESSAGE}[/bold red]")
        return False
    return await run_once(tasks, definition, out)


async def _run_cli_mode(ctx: AppContext, ask: Callable[[str], str]) -> bool:
    try:
        return await run_interactive(ctx.tasks, ctx.definitions, ask)
    finally:
        await ctx.close()


def run_schedule(config: Config):
    """schedule 모드: Ctrl+C 로 종료"""
    ctx = AppContext.build(config)
    console.print(
        Panel.fit(
            f"[bold]Schedule 모드[/]: 인덱스 {len(ctx.definitions)}개, "
            f"tick={config.schedule_term_ms}ms, tz={config.schedule_timezone}",
            border_style="green",
        )
    )
    try:
        asyncio.run(_run_schedule_mode(ctx))
    except KeyboardInterrupt:
        logger.info("인터럽트 수신: 종료")


def run_cli(config: Config, ask: Callable[[str], str] = console.input) -> bool:
    """cli 모드: 1회 실행"""
    ctx = AppContext.build(config)
    console.print(Panel.fit("[bold]CLI 모드[/]: 1회 실행", border_style="blue"))
    try:
        return asyncio.run(_run_cli_mode(ctx, ask))
    except KeyboardInterrupt:
        logger.info("인터럽트 수신: 종료")
        console.print(f"[bold red]{FAILED_MESSAGE}[/bold red]")
        return False
