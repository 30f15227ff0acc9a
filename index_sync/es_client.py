"""Elasticsearch 다중 노드 핸들: 노드 순서를 섞어 실패 시 다음 노드로 넘어감

하나의 EsConnection(= 풀에 들어가는 핸들 1개)이 모든 노드 클라이언트를 묶는다.
  - 전송 실패(연결 거부, 타임아웃 등) → 다음 노드로 failover
  - 실패 상태 코드(4xx/5xx) → 응답으로 간주, RemoteProtocolError (failover 없음)
"""

from __future__ import annotations

import random
from typing import Any, Awaitable, Callable

from elasticsearch import AsyncElasticsearch

from .errors import AllNodesFailed, RemoteProtocolError
from .log import get_logger
from .models import NodeEndpoint

logger = get_logger("es_client")

# 상태 코드 해석은 이 모듈이 직접 한다 (클라이언트 예외 변환 비활성)
_ALL_STATUSES = tuple(range(400, 600))


def build_node_client(endpoint: NodeEndpoint, request_timeout: float) -> AsyncElasticsearch:
    """노드 1개 전용 클라이언트. 재시도는 EsConnection 이 담당하므로 끔."""
    kwargs: dict = {
        "hosts": [endpoint.url],
        "request_timeout": request_timeout,
        "max_retries": 0,
        "retry_on_timeout": False,
    }
    if endpoint.basic_auth:
        kwargs["basic_auth"] = endpoint.basic_auth
    return AsyncElasticsearch(**kwargs).options(ignore_status=_ALL_STATUSES)


class EsNode:
    def __init__(self, endpoint: NodeEndpoint, client: AsyncElasticsearch):
        self.endpoint = endpoint
        self.client = client

    @property
    def url(self) -> str:
        return self.endpoint.url

    async def close(self):
        await self.client.close()


def _process_response_empty(operation: str, resp) -> None:
    """본문이 필요 없는 요청: 성공이면 None, 실패 상태면 원본 본문과 함께 예외"""
    status = resp.meta.status
    if not 200 <= status < 300:
        raise RemoteProtocolError(operation, status, getattr(resp, "body", None))


def _process_response(operation: str, resp) -> Any:
    """본문이 필요한 요청: 성공이면 파싱된 본문 반환"""
    _process_response_empty(operation, resp)
    return resp.body


class EsConnection:
    """
    풀에 보관되는 논리적 ES 핸들.

    모든 작업은 execute_on_any_node() 를 거쳐 노드 순서를 섞은 뒤
    첫 성공 결과를 반환한다.
    """

    def __init__(self, nodes: list[EsNode], rng: random.Random | None = None):
        if not nodes:
            raise ValueError("EsConnection 에는 최소 1개 노드가 필요합니다.")
        self.nodes = nodes
        self._rng = rng or random.Random()

    @classmethod
    def from_endpoints(
        cls, endpoints: list[NodeEndpoint], request_timeout: float = 5.0
    ) -> EsConnection:
        nodes = [EsNode(ep, build_node_client(ep, request_timeout)) for ep in endpoints]
        return cls(nodes)

    async def execute_on_any_node(
        self, op: Callable[[AsyncElasticsearch], Awaitable[Any]]
    ) -> Any:
        """노드 목록을 복사해 섞고 순서대로 시도. 전부 실패하면 AllNodesFailed."""
        order = list(self.nodes)
        self._rng.shuffle(order)

        last_error: Exception | None = None
        for node in order:
            try:
                return await op(node.client)
            except Exception as e:
                logger.warning(f"[yellow]노드 실패[/yellow] {node.url}: {e!r}")
                last_error = e

        raise AllNodesFailed(last_error) from last_error

    # ================================================================
    # 인덱스 / alias 관리
    # ================================================================

    async def create_index(self, index: str, index_doc: dict) -> None:
        """index_doc: {"settings": {...}, "mappings": {...}, "aliases": {...}} 형식"""
        kwargs = {
            k: index_doc[k] for k in ("settings", "mappings", "aliases") if k in index_doc
        }
        resp = await self.execute_on_any_node(
            lambda es: es.indices.create(index=index, **kwargs)
        )
        _process_response_empty("create_index", resp)

    async def index_exists(self, index: str) -> bool:
        resp = await self.execute_on_any_node(lambda es: es.indices.exists(index=index))
        return self._exists_status("index_exists", resp)

    async def alias_exists(self, alias: str) -> bool:
        resp = await self.execute_on_any_node(
            lambda es: es.indices.exists_alias(name=alias)
        )
        return self._exists_status("alias_exists", resp)

    @staticmethod
    def _exists_status(operation: str, resp) -> bool:
        status = resp.meta.status
        if status == 404:
            return False
        _process_response_empty(operation, resp)
        return True

    async def get_index(self, index: str) -> dict:
        resp = await self.execute_on_any_node(lambda es: es.indices.get(index=index))
        return _process_response("get_index", resp)

    async def get_alias(self, alias: str) -> dict:
        """{physical_index: {"aliases": {alias: {}}}}: 없으면 RemoteProtocolError(404)"""
        resp = await self.execute_on_any_node(lambda es: es.indices.get_alias(name=alias))
        return _process_response("get_alias", resp)

    async def update_aliases(self, actions: list[dict]) -> None:
        """remove/add 액션 묶음을 원자적으로 적용"""
        resp = await self.execute_on_any_node(
            lambda es: es.indices.update_aliases(actions=actions)
        )
        _process_response_empty("update_aliases", resp)

    async def create_alias(self, index: str, alias: str) -> None:
        await self.update_aliases([{"add": {"index": index, "alias": alias}}])

    async def delete_index(self, index: str) -> None:
        resp = await self.execute_on_any_node(lambda es: es.indices.delete(index=index))
        _process_response_empty("delete_index", resp)

    async def refresh(self, index: str) -> None:
        resp = await self.execute_on_any_node(lambda es: es.indices.refresh(index=index))
        _process_response_empty("refresh", resp)

    # ================================================================
    # 문서 쓰기
    # ================================================================

    async def bulk_index(self, index: str, documents: list[dict]) -> int:
        """_id 없이 벌크 색인. 항목 단위 오류가 있으면 첫 오류로 예외."""
        operations: list[dict] = []
        for doc in documents:
            operations.append({"index": {}})
            operations.append(doc)

        resp = await self.execute_on_any_node(
            lambda es: es.bulk(index=index, operations=operations)
        )
        body = _process_response("bulk", resp)
        if body.get("errors"):
            first = next(
                (item["index"]["error"] for item in body.get("items", [])
                 if "error" in item.get("index", {})),
                None,
            )
            raise RemoteProtocolError("bulk", resp.meta.status, first or body)
        return len(documents)

    async def index_document(self, index: str, document: dict) -> None:
        resp = await self.execute_on_any_node(
            lambda es: es.index(index=index, document=document)
        )
        _process_response_empty("index_document", resp)

    async def delete_by_field(self, index: str, field: str, value: Any) -> int:
        """term 쿼리로 일치 문서 삭제. 삭제 건수 반환."""
        resp = await self.execute_on_any_node(
            lambda es: es.delete_by_query(index=index, query={"term": {field: value}})
        )
        body = _process_response("delete_by_query", resp)
        return body.get("deleted", 0)

    # ================================================================
    # 조회
    # ================================================================

    async def search(self, index: str, **kwargs) -> dict:
        resp = await self.execute_on_any_node(lambda es: es.search(index=index, **kwargs))
        return _process_response("search", resp)

    async def open_scroll(
        self, index: str, query: dict, size: int, keep_alive: str = "1m"
    ) -> dict:
        resp = await self.execute_on_any_node(
            lambda es: es.search(index=index, query=query, size=size, scroll=keep_alive)
        )
        return _process_response("open_scroll", resp)

    async def continue_scroll(self, scroll_id: str, keep_alive: str = "1m") -> dict:
        resp = await self.execute_on_any_node(
            lambda es: es.scroll(scroll_id=scroll_id, scroll=keep_alive)
        )
        return _process_response("continue_scroll", resp)

    async def clear_scroll(self, scroll_id: str) -> None:
        resp = await self.execute_on_any_node(
            lambda es: es.clear_scroll(scroll_id=scroll_id)
        )
        _process_response_empty("clear_scroll", resp)

    async def close(self):
        for node in self.nodes:
            await node.close()
