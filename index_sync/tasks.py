"""색인 작업: function_name 별 핸들러 + 워터마크 정책

store_static_index:  스냅샷 → 집계 → 분류(strict) → 전체 재색인(alias 교체) → 워터마크 갱신
store_dynamic_index: 워터마크 조회 → create / update / delete 순차 반영
                     → 셋 중 하나라도 비어 있지 않을 때만 워터마크를 사이클 시작 시각으로 갱신
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from .config import IndexDefinition
from .errors import ConfigurationError
from .indexer import utc_now
from .interfaces import DataSource, SearchIndex
from .log import get_logger
from .models import CREATE, DELETE, UPDATE
from .reconcile import Reconciler

logger = get_logger("tasks")

KEY_FIELD = "seq"


@dataclass
class TaskResult:
    index_name: str
    function_name: str
    started_at: datetime
    counts: dict[str, int] = field(default_factory=dict)
    new_index: str | None = None
    watermark_advanced: bool = False
    elapsed_sec: float = 0.0


class IndexingTasks:
    """
    인덱스 정의 1건을 한 번 실행하는 진입점.

    스케줄 루프와 대화형 CLI 가 같은 run() 을 호출한다.
    """

    def __init__(
        self,
        source: DataSource,
        search_index: SearchIndex,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.source = source
        self.search_index = search_index
        self.reconciler = Reconciler(source)
        self.clock = clock
        self.handlers: dict[str, Callable[[IndexDefinition], Awaitable[TaskResult]]] = {
            "store_static_index": self.store_static_index,
            "store_dynamic_index": self.store_dynamic_index,
        }

    async def run(self, definition: IndexDefinition) -> TaskResult:
        handler = self.handlers.get(definition.function_name)
        if handler is None:
            raise ConfigurationError(
                f"[{definition.index_name}] 등록되지 않은 핸들러: {definition.function_name}"
            )

        start = time.perf_counter()
        result = await handler(definition)
        result.elapsed_sec = time.perf_counter() - start
        logger.info(
            f"[{definition.index_name}] {definition.function_name} 완료 "
            f"{result.counts} ({result.elapsed_sec:.1f}s)"
        )
        return result

    # ================================================================
    # 전체 색인
    # ================================================================

    async def store_static_index(self, definition: IndexDefinition) -> TaskResult:
        started_at = self.clock()
        result = TaskResult(definition.index_name, definition.function_name, started_at)

        documents = await self.reconciler.build_snapshot(definition.sql_batch_size, started_at)
        result.new_index = await self.search_index.full_reindex(
            definition, [doc.to_document() for doc in documents]
        )
        result.counts = {"indexed": len(documents)}

        await self.source.write_watermark(definition, started_at)
        result.watermark_advanced = True
        return result

    # ================================================================
    # 증분 색인
    # ================================================================

    async def store_dynamic_index(self, definition: IndexDefinition) -> TaskResult:
        started_at = self.clock()
        result = TaskResult(definition.index_name, definition.function_name, started_at)

        since = await self.source.read_watermark(definition)
        change_set = await self.reconciler.compute_change_set(
            since, started_at, definition.sql_batch_size
        )
        result.counts = change_set.counts()

        if change_set.is_empty():
            logger.debug(f"[{definition.index_name}] 변경 없음 (since={since})")
            return result

        # 다음 단계의 delete-by-query 가 앞 단계 문서를 볼 수 있도록 단계마다 refresh
        if change_set.created:
            await self.search_index.bulk_insert(
                definition, [doc.to_document() for doc in change_set.created], CREATE
            )
            await self.search_index.refresh(definition)

        if change_set.updated:
            await self.search_index.update_by_field(
                definition, KEY_FIELD, [doc.to_document() for doc in change_set.updated]
            )
            await self.search_index.refresh(definition)

        if change_set.deleted:
            await self.search_index.delete_by_field(
                definition, KEY_FIELD, [doc.seq for doc in change_set.deleted]
            )

        await self.source.write_watermark(definition, started_at)
        result.watermark_advanced = True
        logger.info(
            f"[{definition.index_name}] 증분 반영 "
            f"{CREATE}={len(change_set.created)} {UPDATE}={len(change_set.updated)} "
            f"{DELETE}={len(change_set.deleted)} (since={since})"
        )
        return result
