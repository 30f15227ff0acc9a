"""Elasticsearch 색인 프로토콜: 전체 재색인(alias 교체) + 증분 쓰기

전체 재색인 (static):
    {alias}-{UTC YYYYmmddHHMMSS} 새 인덱스 생성 → 청크 벌크 적재
    → alias 가 있으면 remove(old)+add(new) 를 한 번에 적용 후 old 삭제, 없으면 alias 생성
    → alias refresh
증분 (dynamic):
    create: alias 로 청크 벌크 적재
    update: 레코드별 delete-by-query(seq) → 새 문서 색인
    delete: 레코드별 delete-by-query(seq)
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

from .config import IndexDefinition
from .errors import ConfigurationError, IndexSyncError
from .es_client import EsConnection
from .failures import FailureLog
from .log import get_logger
from .models import CREATE, parse_es_timestamp
from .pool import ConnectionPool

logger = get_logger("indexer")

STATIC_PHASE = "static"


def utc_now() -> datetime:
    """UTC 현재 시각 (naive). DB DATETIME 컬럼과 같은 기준."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _chunks(items: list, size: int) -> Iterator[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def load_index_settings(path: Path | None) -> dict:
    """인덱스 settings/mappings JSON 로드"""
    if path is None:
        raise ConfigurationError("setting_path 가 지정되지 않았습니다.")
    if not path.exists():
        raise ConfigurationError(f"인덱스 설정 파일이 없습니다: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"인덱스 설정 JSON 파싱 실패: {path} ({e})") from e


class SearchIndexService:
    """
    alias 단위 색인 서비스.

    모든 작업은 풀에서 핸들을 빌려(`async with pool.connection()`) 수행하고
    블록을 벗어나면 반환한다.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        failure_log: FailureLog | None = None,
        clock: Callable[[], datetime] = utc_now,
        key_field: str = "seq",
    ):
        self.pool = pool
        self.failure_log = failure_log or FailureLog(None)
        self.clock = clock
        self.key_field = key_field

    def physical_index_name(self, alias: str) -> str:
        return f"{alias}-{self.clock().strftime('%Y%m%d%H%M%S')}"

    # ================================================================
    # 전체 재색인
    # ================================================================

    async def full_reindex(self, definition: IndexDefinition, documents: list[dict]) -> str:
        """새 물리 인덱스에 적재 후 alias 를 원자적으로 교체. 새 인덱스 이름 반환."""
        alias = definition.index_name
        index_doc = load_index_settings(definition.setting_path)
        new_index = self.physical_index_name(alias)

        async with self.pool.connection() as es:
            await es.create_index(new_index, index_doc)
            logger.info(f"[{alias}] 새 인덱스 생성: {new_index}")

            try:
                for chunk in _chunks(documents, definition.es_batch_size):
                    await self._bulk_chunk(es, new_index, alias, STATIC_PHASE, chunk)
                old_indices = await self._point_alias(es, alias, new_index)
            except IndexSyncError:
                # alias 가 new_index 로 넘어가기 전의 실패만 여기로 옴
                await self._discard_index(es, new_index)
                raise

            for name in old_indices:
                await es.delete_index(name)
                logger.info(f"[{alias}] 이전 인덱스 삭제: {name}")
            await es.refresh(alias)

        logger.info(
            f"[bold green][{alias}] 전체 색인 완료[/bold green] "
            f"{len(documents):,}건 → {new_index} (교체된 인덱스: {old_indices or '-'})"
        )
        return new_index

    async def _point_alias(self, es: EsConnection, alias: str, new_index: str) -> list[str]:
        """alias → new_index (remove+add 한 번에). 떨어져 나간 물리 인덱스 목록 반환."""
        if not await es.alias_exists(alias):
            await es.create_alias(new_index, alias)
            logger.info(f"[{alias}] alias 신규 생성 → {new_index}")
            return []

        current = await es.get_alias(alias)
        old_indices = [name for name in current if name != new_index]

        actions = [{"remove": {"index": name, "alias": alias}} for name in old_indices]
        actions.append({"add": {"index": new_index, "alias": alias}})
        await es.update_aliases(actions)
        return old_indices

    async def _discard_index(self, es: EsConnection, index: str):
        """적재 또는 alias 전환에 실패한 새 인덱스 정리. 정리 실패는 로그만 남기고 원래 예외를 전파."""
        try:
            await es.delete_index(index)
            logger.warning(f"[yellow]적재 실패 → 새 인덱스 삭제[/yellow] {index}")
        except IndexSyncError as e:
            logger.error(f"[red]새 인덱스 정리 실패[/red] {index}: {e}")

    async def _bulk_chunk(
        self, es: EsConnection, index: str, alias: str, phase: str, chunk: list[dict]
    ) -> int:
        try:
            return await es.bulk_index(index, chunk)
        except IndexSyncError as e:
            keys = [doc.get(self.key_field) for doc in chunk]
            await self.failure_log.record(alias, phase, keys, e)
            raise

    # ================================================================
    # 증분 쓰기
    # ================================================================

    async def bulk_insert(
        self, definition: IndexDefinition, documents: list[dict], phase: str = CREATE
    ) -> int:
        alias = definition.index_name
        total = 0
        async with self.pool.connection() as es:
            for chunk in _chunks(documents, definition.es_batch_size):
                total += await self._bulk_chunk(es, alias, alias, phase, chunk)
        return total

    async def update_by_field(
        self, definition: IndexDefinition, field: str, documents: list[dict]
    ) -> int:
        """레코드별 delete-by-query(field) → 문서 색인"""
        alias = definition.index_name
        async with self.pool.connection() as es:
            for doc in documents:
                await es.delete_by_field(alias, field, doc[field])
                await es.index_document(alias, doc)
        return len(documents)

    async def delete_by_field(
        self, definition: IndexDefinition, field: str, values: list
    ) -> int:
        alias = definition.index_name
        deleted = 0
        async with self.pool.connection() as es:
            for value in values:
                deleted += await es.delete_by_field(alias, field, value)
        return deleted

    async def refresh(self, definition: IndexDefinition) -> None:
        async with self.pool.connection() as es:
            await es.refresh(definition.index_name)

    # ================================================================
    # 조회
    # ================================================================

    async def get_recent_index_datetime(
        self, definition: IndexDefinition, field: str = "timestamp"
    ) -> datetime | None:
        """alias 에서 field 기준 가장 최근 문서의 시각. 문서가 없으면 None."""
        async with self.pool.connection() as es:
            body = await es.search(
                definition.index_name,
                size=1,
                sort=[{field: {"order": "desc"}}],
                source=[field],
            )

        hits = body.get("hits", {}).get("hits", [])
        if not hits:
            return None
        return parse_es_timestamp(hits[0].get("_source", {}).get(field))
