"""로깅: 콘솔(Rich) + 일 단위 로테이션 파일(plain text)"""

import logging
import tempfile
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from index_sync.log import LOG_FILE_NAME, PKG, get_logger, setup_logging


def test_file_log_strips_markup_and_rotates_daily():
    root = logging.getLogger(PKG)
    saved = list(root.handlers)
    root.handlers.clear()
    try:
        with tempfile.TemporaryDirectory() as td:
            setup_logging(log_dir=Path(td), backup_count=10)
            setup_logging(log_dir=Path(td))  # 중복 호출 시 핸들러 추가 없음

            file_handlers = [h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)]
            assert len(file_handlers) == 1
            assert file_handlers[0].when == "MIDNIGHT"
            assert file_handlers[0].backupCount == 10

            get_logger("pool").info("[bold green]checkout[/bold green] ok")
            for h in root.handlers:
                h.flush()
            text = (Path(td) / LOG_FILE_NAME).read_text(encoding="utf-8")

            for h in list(root.handlers):
                h.close()
                root.removeHandler(h)
    finally:
        root.handlers[:] = saved

    assert "index_sync.pool  checkout ok" in text
    assert "[bold green]" not in text
    assert "INFO" in text
