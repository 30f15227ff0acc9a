"""다중 노드 실행기: failover / 전체 실패 / 상태 코드 해석"""

import asyncio
import random

import pytest

from index_sync.errors import AllNodesFailed, RemoteProtocolError
from index_sync.es_client import EsConnection, EsNode
from index_sync.models import NodeEndpoint

from .fakes import FakeCluster, FakeNodeClient, make_connection


# ============================================================
# failover
# ============================================================
@pytest.mark.parametrize("failing", [0, 1, 2, 3])
def test_succeeds_when_any_node_is_healthy(failing):
    """N 개 중 M(<N) 개가 죽어 있어도 성공, 죽은 노드는 최대 1번씩만 시도"""
    cluster = FakeCluster()
    conn, clients = make_connection(cluster, failing=failing, healthy=1)

    asyncio.run(conn.create_index("stores-1", {"settings": {}}))

    assert "stores-1" in cluster.indices
    for client in clients:
        assert len(client.calls) <= 1
    assert sum(len(c.calls) for c in clients if not c.fail) == 1


def test_all_nodes_failed_keeps_last_error():
    cluster = FakeCluster()
    conn, clients = make_connection(cluster, failing=3, healthy=0)

    with pytest.raises(AllNodesFailed) as exc_info:
        asyncio.run(conn.refresh("stores"))

    error = exc_info.value
    assert isinstance(error.last_error, ConnectionRefusedError)
    assert error.__cause__ is error.last_error
    assert "All Elasticsearch nodes failed" in str(error)
    assert all(len(c.calls) == 1 for c in clients)


def test_shuffle_does_not_reorder_handle_nodes():
    cluster = FakeCluster()
    clients = [FakeNodeClient(cluster, f"n{i}") for i in range(5)]
    nodes = [EsNode(NodeEndpoint(f"n{i}:9200"), c) for i, c in enumerate(clients)]
    conn = EsConnection(list(nodes), rng=random.Random(7))

    for _ in range(10):
        asyncio.run(conn.index_exists("x"))

    assert conn.nodes == nodes
    # 여러 번 호출하면 둘 이상의 노드가 선택됨
    assert sum(1 for c in clients if c.calls) > 1


# ============================================================
# 응답 해석
# ============================================================
def test_failure_status_raises_without_failover():
    """4xx 는 응답이므로 다음 노드로 넘어가지 않고 원본 본문과 함께 예외"""
    cluster = FakeCluster()
    conn, clients = make_connection(cluster, failing=0, healthy=3)

    with pytest.raises(RemoteProtocolError) as exc_info:
        asyncio.run(conn.get_alias("nope"))

    assert exc_info.value.status == 404
    assert exc_info.value.body["status"] == 404
    assert sum(len(c.calls) for c in clients) == 1


def test_exists_maps_404_to_false():
    cluster = FakeCluster()
    cluster.indices["stores-1"] = []
    conn, _ = make_connection(cluster)

    assert asyncio.run(conn.index_exists("stores-1")) is True
    assert asyncio.run(conn.index_exists("stores-2")) is False
    assert asyncio.run(conn.alias_exists("stores")) is False


def test_bulk_item_errors_raise():
    cluster = FakeCluster()
    cluster.indices["stores-1"] = []
    cluster.fail_bulk = True
    conn, _ = make_connection(cluster)

    with pytest.raises(RemoteProtocolError) as exc_info:
        asyncio.run(conn.bulk_index("stores-1", [{"seq": 1}]))

    assert exc_info.value.operation == "bulk"
    assert exc_info.value.body == {"type": "mapper_parsing_exception"}


def test_bulk_without_ids_and_delete_by_field():
    cluster = FakeCluster()
    cluster.indices["stores-1"] = []
    conn, _ = make_connection(cluster)

    async def _run():
        await conn.bulk_index("stores-1", [{"seq": 1}, {"seq": 2}, {"seq": 1}])
        return await conn.delete_by_field("stores-1", "seq", 1)

    assert asyncio.run(_run()) == 2
    assert cluster.indices["stores-1"] == [{"seq": 2}]



def test_scroll_and_get_index():
    cluster = FakeCluster()
    cluster.indices["stores-1"] = [{"seq": 1}]
    cluster.aliases["stores"] = {"stores-1"}
    conn, _ = make_connection(cluster)

    async def _run():
        first = await conn.open_scroll("stores", {"match_all": {}}, size=10)
        more = await conn.continue_scroll("scroll-1")
        await conn.clear_scroll("scroll-1")
        return first, more, await conn.get_index("stores")

    first, more, index_info = asyncio.run(_run())
    assert first["hits"]["hits"] == [{"_source": {"seq": 1}}]
    assert more["hits"]["hits"] == []
    assert list(index_info) == ["stores-1"]
