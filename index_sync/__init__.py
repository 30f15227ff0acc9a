"""
index_sync: MySQL 가게 데이터 → Elasticsearch 스케줄 색인 패키지

Schedule 모드 (데몬):
    from index_sync import Config, run_schedule
    run_schedule(Config.from_env())

CLI 모드 (1회 실행):
    from index_sync import Config, run_cli
    run_cli(Config.from_env())

개별 작업 (async):
    from index_sync import AppContext
    ctx = AppContext.build(Config.from_env())
    await ctx.tasks.run(ctx.definitions[0])
"""

from .cli import run_cli, run_schedule
from .config import Config, IndexDefinition, load_index_definitions
from .context import AppContext
from .errors import (
    AllNodesFailed,
    ConfigurationError,
    ConnectionExhausted,
    DataIntegrityError,
    IndexSyncError,
    ParseError,
    RemoteProtocolError,
)
from .es_client import EsConnection
from .indexer import SearchIndexService
from .pool import ConnectionPool
from .tasks import IndexingTasks

__all__ = [
    "Config", "IndexDefinition", "load_index_definitions", "AppContext",
    "ConnectionPool", "EsConnection", "SearchIndexService", "IndexingTasks",
    "run_cli", "run_schedule",
    "IndexSyncError", "ConfigurationError", "ConnectionExhausted",
    "RemoteProtocolError", "AllNodesFailed", "DataIntegrityError", "ParseError",
]
