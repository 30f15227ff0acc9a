"""
패키지 통합 로깅 설정 (Rich console + 일 단위 로테이션 plain-text file)

설계:
  - Console: RichHandler (colored, timestamps, markup 지원)
  - File:    TimedRotatingFileHandler (자정 로테이션, backup_count 개 보관, markup 제거)
  - logger.info() 한 번 호출로 양쪽에 동시 출력

사용법:
    from .log import setup_logging, get_logger

    logger = get_logger("scheduler")     # index_sync.scheduler
    setup_logging(log_dir=Path("logs"))
    logger.info("[bold green]색인 완료[/bold green]")
    # File: "2026-02-09 15:30:45  INFO  index_sync.scheduler  색인 완료"
"""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler
from rich.markup import MarkupError
from rich.text import Text

PKG = "index_sync"
LOG_FILE_NAME = "index_sync.log"


class _PlainFormatter(logging.Formatter):
    """
    Rich markup 태그를 제거하는 파일 핸들러용 Formatter.

    예: "[bold green]완료![/bold green]" → "완료!"
    """

    def format(self, record: logging.LogRecord) -> str:
        original_msg = record.msg
        try:
            record.msg = Text.from_markup(str(record.msg)).plain
        except MarkupError:
            pass  # markup 파싱 실패 시 원본 유지
        result = super().format(record)
        record.msg = original_msg
        return result


def setup_logging(
    log_dir: Path | None = None,
    level: int | str = logging.INFO,
    backup_count: int = 10,
) -> logging.Logger:
    """
    패키지 루트 로거에 핸들러를 설정.

    - RichHandler: 첫 호출 시 1회만 추가
    - TimedRotatingFileHandler: log_dir 지정 시 1회만 추가

    Args:
        log_dir:      로그 디렉토리 (None이면 콘솔만)
        level:        로그 레벨
        backup_count: 보관할 일 단위 로그 파일 수
    """
    logger = logging.getLogger(PKG)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        console = RichHandler(
            rich_tracebacks=True,
            show_path=False,
            markup=True,
            log_time_format="[%H:%M:%S]",
        )
        console.setLevel(level)
        logger.addHandler(console)

    has_file = any(isinstance(h, TimedRotatingFileHandler) for h in logger.handlers)
    if log_dir and not has_file:
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = TimedRotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            when="midnight",
            backupCount=backup_count,
            encoding="utf-8",
        )
        fh.setFormatter(
            _PlainFormatter("%(asctime)s  %(levelname)s  %(name)s  %(message)s")
        )
        fh.setLevel(level)
        logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    패키지 하위 로거 반환.

    예: get_logger("pool") → logging.getLogger("index_sync.pool")
    """
    return logging.getLogger(f"{PKG}.{name}")
