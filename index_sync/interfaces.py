"""색인 파이프라인이 기대하는 최소 인터페이스 (duck typing)

실제 구현: source.MySQLDataSource, indexer.SearchIndexService
테스트:    tests/fakes.py 의 인메모리 구현
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from .config import IndexDefinition
from .models import ChangeWindow, SourceRecord, TaxonomyRow


class DataSource(Protocol):
    """관계형 원천 데이터 (system of record)"""

    async def fetch_snapshot_page(
        self, cursor: int | None, batch_size: int, as_of: datetime
    ) -> list[SourceRecord]:
        """활성 엔티티 키 > cursor 인 다음 batch_size 개 엔티티의 모든 행"""
        ...

    async def fetch_changed_page(
        self, window: ChangeWindow, cursor: int | None, batch_size: int
    ) -> list[SourceRecord]:
        """window 조건에 맞는 엔티티 키 > cursor 인 다음 페이지"""
        ...

    async def fetch_taxonomy(
        self, keys: Sequence[int] | None = None
    ) -> list[TaxonomyRow]: ...

    async def read_watermark(self, definition: IndexDefinition) -> datetime: ...

    async def write_watermark(
        self, definition: IndexDefinition, timestamp: datetime
    ) -> None: ...


class SearchIndex(Protocol):
    """검색 엔진 쪽 쓰기 프로토콜 (alias 단위)"""

    async def full_reindex(
        self, definition: IndexDefinition, documents: list[dict]
    ) -> str: ...

    async def bulk_insert(
        self, definition: IndexDefinition, documents: list[dict], phase: str = ...
    ) -> int: ...

    async def update_by_field(
        self, definition: IndexDefinition, field: str, documents: list[dict]
    ) -> int: ...

    async def delete_by_field(
        self, definition: IndexDefinition, field: str, values: list
    ) -> int: ...

    async def refresh(self, definition: IndexDefinition) -> None: ...

    async def get_recent_index_datetime(
        self, definition: IndexDefinition, field: str = ...
    ) -> datetime | None: ...
