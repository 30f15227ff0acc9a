"""실행 컨텍스트: 시작 시 1회 조립해 루프/CLI 에 명시적으로 전달"""

from __future__ import annotations

from dataclasses import dataclass

from .config import Config, IndexDefinition, load_index_definitions
from .failures import FailureLog
from .indexer import SearchIndexService
from .pool import ConnectionPool
from .source import MySQLDataSource
from .tasks import IndexingTasks


@dataclass
class AppContext:
    config: Config
    definitions: list[IndexDefinition]
    pool: ConnectionPool
    tasks: IndexingTasks

    @classmethod
    def build(cls, config: Config) -> AppContext:
        """설정 검증 → 인덱스 정의 로드 → 풀/원천/색인 서비스 생성"""
        config.validate()
        definitions = load_index_definitions(config.index_list_path)

        pool = ConnectionPool.from_config(config)
        search_index = SearchIndexService(
            pool, FailureLog(config.resolved_failure_log_path)
        )
        tasks = IndexingTasks(MySQLDataSource(config), search_index)
        return cls(config, definitions, pool, tasks)

    async def close(self):
        await self.pool.close()
