"""색인 작업 핸들러: 단계 순서와 워터마크 정책"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from index_sync.config import IndexDefinition
from index_sync.errors import ConfigurationError, RemoteProtocolError
from index_sync.indexer import SearchIndexService
from index_sync.models import CREATE, DELETE, UPDATE, TaxonomyRow
from index_sync.tasks import IndexingTasks

from .fakes import FakeCluster, FakeDataSource, make_pool, record

WATERMARK = datetime(2026, 2, 28, 0, 0, 0)
CYCLE_START = datetime(2026, 3, 1, 4, 0, 0)


def _dynamic() -> IndexDefinition:
    return IndexDefinition(
        index_name="stores",
        time="0 */5 * * * *",
        indexing_type="dynamic",
        function_name="store_dynamic_index",
        sql_batch_size=100,
        es_batch_size=50,
    )


def _static() -> IndexDefinition:
    return IndexDefinition(
        index_name="stores",
        time="0 0 4 * * *",
        indexing_type="static",
        function_name="store_static_index",
        sql_batch_size=100,
        es_batch_size=50,
        setting_path=None,
    )


def _search_index() -> MagicMock:
    """호출 순서를 한 리스트에 기록하는 SearchIndex 대역"""
    index = MagicMock()
    calls = []
    for name in ("full_reindex", "bulk_insert", "update_by_field", "delete_by_field", "refresh"):
        mock = AsyncMock(side_effect=lambda *a, _n=name, **kw: calls.append(_n) or "stores-new")
        setattr(index, name, mock)
    index.calls = calls
    return index


# ============================================================
# 증분 색인
# ============================================================
def test_dynamic_applies_phases_in_order_and_advances_watermark():
    source = FakeDataSource(
        changed={
            CREATE: [record(1, "A")],
            UPDATE: [record(2, "B")],
            DELETE: [record(3)],
        },
        watermark=WATERMARK,
    )
    index = _search_index()
    tasks = IndexingTasks(source, index, clock=lambda: CYCLE_START)

    result = asyncio.run(tasks.run(_dynamic()))

    assert index.calls == ["bulk_insert", "refresh", "update_by_field", "refresh", "delete_by_field"]
    created_docs = index.bulk_insert.call_args.args[1]
    assert created_docs[0]["seq"] == 1 and created_docs[0]["timestamp"] == "2026-03-01T04:00:00Z"
    assert index.update_by_field.call_args.args[1] == "seq"
    assert index.delete_by_field.call_args.args[2] == [3]
    assert source.watermarks["stores"] == CYCLE_START
    assert result.watermark_advanced
    assert result.counts == {CREATE: 1, UPDATE: 1, DELETE: 1}


@pytest.mark.parametrize("kind", [CREATE, UPDATE, DELETE])
def test_dynamic_single_phase_advances_watermark(kind):
    source = FakeDataSource(changed={kind: [record(7)]}, watermark=WATERMARK)
    index = _search_index()

    asyncio.run(IndexingTasks(source, index, clock=lambda: CYCLE_START).run(_dynamic()))

    assert source.watermarks["stores"] == CYCLE_START


def test_dynamic_empty_cycle_keeps_watermark():
    source = FakeDataSource(watermark=WATERMARK)
    index = _search_index()

    result = asyncio.run(IndexingTasks(source, index, clock=lambda: CYCLE_START).run(_dynamic()))

    assert index.calls == []
    assert "stores" not in source.watermarks
    assert asyncio.run(source.read_watermark(_dynamic())) == WATERMARK
    assert not result.watermark_advanced


def test_dynamic_failure_keeps_watermark():
    source = FakeDataSource(changed={CREATE: [record(1)]}, watermark=WATERMARK)
    index = _search_index()
    index.bulk_insert.side_effect = RemoteProtocolError("bulk", 400, {"error": "bad"})

    with pytest.raises(RemoteProtocolError):
        asyncio.run(IndexingTasks(source, index, clock=lambda: CYCLE_START).run(_dynamic()))

    assert "stores" not in source.watermarks


# ============================================================
# 전체 색인
# ============================================================
def test_static_reindexes_snapshot_and_advances_watermark():
    source = FakeDataSource(
        snapshot=[record(1, "A"), record(1, "B"), record(2)],
        taxonomy=[TaxonomyRow(1, 10, 101), TaxonomyRow(2, 20, 201)],
        watermark=WATERMARK,
    )
    index = _search_index()

    result = asyncio.run(IndexingTasks(source, index, clock=lambda: CYCLE_START).run(_static()))

    documents = {d["seq"]: d for d in index.full_reindex.call_args.args[1]}
    assert documents[1]["recommend_names"] == ["A", "B"]
    assert documents[2]["major_type"] == [20]
    assert result.new_index == "stores-new"
    assert result.counts == {"indexed": 2}
    assert source.watermarks["stores"] == CYCLE_START


def test_unknown_handler_is_rejected():
    definition = IndexDefinition(
        index_name="stores", time="0 0 4 * * *", indexing_type="static",
        function_name="nope", sql_batch_size=1, es_batch_size=1,
    )
    tasks = IndexingTasks(FakeDataSource(), _search_index())

    with pytest.raises(ConfigurationError):
        asyncio.run(tasks.run(definition))


def test_dynamic_cycle_keeps_one_document_per_store():
    """같은 가게가 create 와 update 에 모두 잡혀도 색인에는 1건만 남음"""
    cluster = FakeCluster()
    cluster.indices["stores-1"] = [{"seq": 9, "name": "store-9"}]
    cluster.aliases["stores"] = {"stores-1"}
    source = FakeDataSource(
        changed={
            CREATE: [record(1, "A")],
            UPDATE: [record(1, "A"), record(1, "B")],
            DELETE: [record(9)],
        },
        watermark=WATERMARK,
    )
    tasks = IndexingTasks(
        source, SearchIndexService(make_pool(cluster)), clock=lambda: CYCLE_START
    )

    asyncio.run(tasks.run(_dynamic()))

    docs = cluster.documents("stores")
    assert [d["seq"] for d in docs] == [1]
    assert docs[0]["recommend_names"] == ["A", "B"]
    assert source.watermarks["stores"] == CYCLE_START
