"""ES 핸들 커넥션 풀: 고정 크기, checkout/release

  - 핸들은 시작 시 pool_size 개를 미리 만들어 deque 에 보관
  - checkout: 비어 있으면 고정 간격으로 대기 후 재시도, 최대 attempts 회
  - release:  `async with pool.connection()` 블록을 벗어나면 반드시 반환
  - asyncio.Lock 은 push/pop 동안에만 잡음 (I/O 중에는 잡지 않음)
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .config import Config
from .errors import ConnectionExhausted
from .es_client import EsConnection
from .log import get_logger
from .models import NodeEndpoint

logger = get_logger("pool")


class ConnectionPool:
    def __init__(
        self,
        handles: list[EsConnection],
        attempts: int = 10,
        interval: float = 7.0,
    ):
        self._queue: deque[EsConnection] = deque(handles)
        self._lock = asyncio.Lock()
        self.size = len(handles)
        self.attempts = attempts
        self.interval = interval

    @classmethod
    def from_config(cls, config: Config) -> ConnectionPool:
        endpoints = [
            NodeEndpoint(url, config.es_username, config.es_password)
            for url in config.es_nodes
        ]
        handles = [
            EsConnection.from_endpoints(endpoints, config.es_request_timeout)
            for _ in range(config.es_pool_size)
        ]
        logger.info(
            f"ES 커넥션 풀 생성: size={config.es_pool_size}, nodes={config.es_nodes}"
        )
        return cls(handles, config.checkout_attempts, config.checkout_interval)

    async def _pop(self) -> EsConnection | None:
        async with self._lock:
            if self._queue:
                return self._queue.popleft()
            return None

    async def checkout(self) -> EsConnection:
        for attempt in range(1, self.attempts + 1):
            handle = await self._pop()
            if handle is not None:
                logger.debug(f"checkout (남은 핸들 {len(self._queue)})")
                return handle

            logger.warning(
                f"[yellow]풀 비어 있음[/yellow] ({attempt}/{self.attempts}), "
                f"{self.interval}s 후 재시도"
            )
            if attempt < self.attempts:
                await asyncio.sleep(self.interval)

        raise ConnectionExhausted(self.attempts)

    async def release(self, handle: EsConnection) -> None:
        async with self._lock:
            self._queue.append(handle)
        logger.debug(f"release (남은 핸들 {len(self._queue)})")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[EsConnection]:
        """빌린 핸들은 정상/예외/취소 모든 경로에서 반환됨"""
        handle = await self.checkout()
        try:
            yield handle
        finally:
            await self.release(handle)

    @property
    def available(self) -> int:
        return len(self._queue)

    async def close(self):
        async with self._lock:
            handles = list(self._queue)
            self._queue.clear()
        for handle in handles:
            await handle.close()
