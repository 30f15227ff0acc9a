"""원천 행 → 색인 문서 조정 파이프라인

1. 집계:   (가게 × 추천) 조인 행을 가게 키 기준으로 합쳐 recommend_names 배열 생성
2. 분류:   (seq, 대분류, 소분류) 링크를 가게별 major_type / sub_type 배열로 부착
3. 변경:   워터마크 이후 create / update / delete 세 단계 변경 집합 계산
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from .errors import DataIntegrityError
from .interfaces import DataSource
from .log import get_logger
from .models import (
    CREATE,
    DELETE,
    UPDATE,
    ChangeSet,
    ChangeWindow,
    SourceRecord,
    StoreDocument,
    TaxonomyRow,
    format_es_timestamp,
)

logger = get_logger("reconcile")


def aggregate_rows(records: Iterable[SourceRecord], indexed_at: str) -> list[StoreDocument]:
    """
    가게 키별로 행을 합친다.

    - 처음 보는 키: 추천 값이 있으면 [값], 없으면 [] 로 문서 생성
    - 이미 본 키:   NULL 이 아닌 추천 값만 이어붙임 (중복 값도 유지)
    - indexed_at:   이번 패스의 모든 문서에 동일하게 찍히는 timestamp
    """
    by_key: dict[int, StoreDocument] = {}
    for record in records:
        existing = by_key.get(record.seq)
        if existing is None:
            by_key[record.seq] = StoreDocument.from_record(record, indexed_at)
        elif record.recommend_name is not None:
            existing.recommend_names.append(record.recommend_name)
    return list(by_key.values())


def group_taxonomy(
    rows: Iterable[TaxonomyRow],
) -> tuple[dict[int, list[int]], dict[int, list[int]]]:
    """링크 행 → (seq → 대분류 목록, seq → 소분류 목록). 키별 중복 제거, 등장 순서 유지."""
    majors: dict[int, list[int]] = {}
    subs: dict[int, list[int]] = {}
    seen_major: set[tuple[int, int]] = set()
    seen_sub: set[tuple[int, int]] = set()

    for row in rows:
        majors.setdefault(row.seq, [])
        subs.setdefault(row.seq, [])
        if (row.seq, row.major_type) not in seen_major:
            seen_major.add((row.seq, row.major_type))
            majors[row.seq].append(row.major_type)
        if (row.seq, row.sub_type) not in seen_sub:
            seen_sub.add((row.seq, row.sub_type))
            subs[row.seq].append(row.sub_type)
    return majors, subs


def apply_taxonomy(
    documents: list[StoreDocument],
    rows: Iterable[TaxonomyRow],
    strict: bool,
) -> list[StoreDocument]:
    """
    문서마다 major_type / sub_type 배열을 채운다.

    strict=True (전체 색인) 에서는 분류가 없는 가게가 있으면 DataIntegrityError,
    아니면 빈 배열로 둔다.
    """
    majors, subs = group_taxonomy(rows)
    missing = [doc.seq for doc in documents if doc.seq not in majors]
    if strict and missing:
        raise DataIntegrityError(
            f"분류 정보가 없는 가게 {len(missing)}건: {missing[:20]}"
        )

    for doc in documents:
        doc.major_type = list(majors.get(doc.seq, []))
        doc.sub_type = list(subs.get(doc.seq, []))
    return documents


class Reconciler:
    def __init__(self, source: DataSource):
        self.source = source

    async def _fetch_all(self, fetch_page, batch_size: int) -> list[SourceRecord]:
        """가게 키 커서로 빈 페이지가 나올 때까지 조회. 커서는 반드시 증가해야 함."""
        records: list[SourceRecord] = []
        cursor: int | None = None
        while True:
            page = await fetch_page(cursor, batch_size)
            if not page:
                break
            next_cursor = max(r.seq for r in page)
            if cursor is not None and next_cursor <= cursor:
                raise DataIntegrityError(
                    f"페이지 커서가 증가하지 않음: {cursor} → {next_cursor}"
                )
            records.extend(page)
            cursor = next_cursor
        return records

    async def fetch_snapshot(self, batch_size: int, as_of: datetime) -> list[SourceRecord]:
        return await self._fetch_all(
            lambda cursor, size: self.source.fetch_snapshot_page(cursor, size, as_of),
            batch_size,
        )

    async def fetch_changed(self, window: ChangeWindow, batch_size: int) -> list[SourceRecord]:
        return await self._fetch_all(
            lambda cursor, size: self.source.fetch_changed_page(window, cursor, size),
            batch_size,
        )

    async def build_snapshot(self, batch_size: int, as_of: datetime) -> list[StoreDocument]:
        """전체 색인용 문서 (분류 strict)"""
        records = await self.fetch_snapshot(batch_size, as_of)
        documents = aggregate_rows(records, format_es_timestamp(as_of))
        taxonomy = await self.source.fetch_taxonomy()
        apply_taxonomy(documents, taxonomy, strict=True)
        logger.info(f"스냅샷: 행 {len(records):,} → 가게 {len(documents):,}")
        return documents

    async def compute_change_set(
        self, since: datetime, as_of: datetime, batch_size: int
    ) -> ChangeSet:
        """
        워터마크(since) 이후 변경분을 세 단계로 나눠 계산.

        create: 활성 + 관련 테이블 reg_dt > since
        update: 활성 + 관련 테이블 chg_dt > since
        delete: 비활성 + 관련 테이블 chg_dt > since
        """
        indexed_at = format_es_timestamp(as_of)
        phases: dict[str, list[StoreDocument]] = {}
        for kind in (CREATE, UPDATE, DELETE):
            records = await self.fetch_changed(ChangeWindow(kind, since, as_of), batch_size)
            phases[kind] = aggregate_rows(records, indexed_at)

        upserts = phases[CREATE] + phases[UPDATE]
        if upserts:
            keys = sorted({doc.seq for doc in upserts})
            taxonomy = await self.source.fetch_taxonomy(keys)
            apply_taxonomy(upserts, taxonomy, strict=False)

        return ChangeSet(
            created=phases[CREATE], updated=phases[UPDATE], deleted=phases[DELETE]
        )
