"""실패 청크 기록기 (JSONL): 수동 재처리용

파일 형식 (1줄 = 실패 청크 1개):
    {"index": "store", "phase": "create", "count": 500, "keys": [...], "error_type": "...",
     "error_message": "...", "timestamp": "..."}
"""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

from .log import get_logger

logger = get_logger("failures")


class FailureLog:
    """asyncio.Lock 으로 여러 스케줄 루프의 동시 쓰기를 직렬화"""

    def __init__(self, path: Path | None):
        self.path = path
        self._lock = asyncio.Lock()
        self._count = 0
        if path:
            path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def enabled(self) -> bool:
        return self.path is not None

    async def record(
        self,
        index: str,
        phase: str,
        keys: list[int],
        error: Exception,
    ):
        if not self.enabled:
            return

        record = {
            "index": index,
            "phase": phase,
            "count": len(keys),
            "keys": keys,
            "error_type": type(error).__name__,
            "error_message": str(error),
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
        }
        async with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
            self._count += 1

        logger.warning(f"[red]실패 기록[/red] {index}/{phase} {len(keys)}건: {error}")

    @property
    def count(self) -> int:
        return self._count
