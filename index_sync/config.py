"""index_sync 설정: 환경 변수(.env) + 인덱스 정의 YAML"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv

from .cron import build_cron_trigger
from .errors import ConfigurationError

STATIC = "static"
DYNAMIC = "dynamic"

# function_name → 색인 모드. IndexingTasks.handlers 와 키가 일치해야 함
KNOWN_HANDLERS = {
    "store_static_index": STATIC,
    "store_dynamic_index": DYNAMIC,
}


def _coerce_int(value: str | None, default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"정수 값이 아닙니다: {value!r}") from e


def _coerce_float(value: str | None, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"실수 값이 아닙니다: {value!r}") from e


def _split_nodes(value: str | None) -> list[str]:
    """"es01:9200,es02:9200" → ["http://es01:9200", "http://es02:9200"]"""
    if not value:
        return []
    nodes = []
    for raw in value.split(","):
        raw = raw.strip()
        if not raw:
            continue
        if "://" not in raw:
            raw = f"http://{raw}"
        nodes.append(raw)
    return nodes


@dataclass
class Config:
    # Elasticsearch 연결
    es_nodes: list[str] = field(default_factory=lambda: ["http://localhost:9200"])
    es_username: str | None = None          # Basic Auth 사용자명
    es_password: str | None = None          # Basic Auth 비밀번호
    es_request_timeout: float = 5.0         # 노드별 요청 타임아웃 (초)

    # 커넥션 풀
    es_pool_size: int = 3                   # 미리 만들어 둘 핸들 수
    checkout_attempts: int = 10             # 풀이 비었을 때 최대 시도 횟수
    checkout_interval: float = 7.0          # 시도 간 대기 (초, 고정)

    # MySQL (원천 데이터)
    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_user: str = "root"
    mysql_password: str = ""
    mysql_database: str = "yummy"
    mysql_charset: str = "utf8mb4"

    # 스케줄
    index_list_path: Path = Path("config/index_list.yaml")
    schedule_term_ms: int = 500             # 스케줄 루프 tick (ms)
    schedule_timezone: str = "Asia/Seoul"   # cron 평가 기준 시간대

    # 로그
    log_dir: Path | None = Path("logs")
    log_backup_count: int = 10              # 일 단위 로그 파일 보관 수
    log_level: str = "INFO"
    failure_log_path: Path | None = None    # 실패 청크 JSONL (None=log_dir/failures.jsonl)

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> Config:
        """.env 로드 후 환경 변수로 Config 생성. 없는 키는 기본값 유지."""
        load_dotenv(dotenv_path=env_file)
        defaults = cls()
        env = os.environ

        log_dir = env.get("LOG_DIR")
        failure_log = env.get("FAILURE_LOG_PATH")
        return cls(
            es_nodes=_split_nodes(env.get("ES_DB_URL")) or defaults.es_nodes,
            es_username=env.get("ES_ID") or None,
            es_password=env.get("ES_PW") or None,
            es_request_timeout=_coerce_float(
                env.get("ES_REQUEST_TIMEOUT_SEC"), defaults.es_request_timeout
            ),
            es_pool_size=_coerce_int(env.get("ES_POOL_CNT"), defaults.es_pool_size),
            checkout_attempts=_coerce_int(
                env.get("ES_POOL_CHECKOUT_ATTEMPTS"), defaults.checkout_attempts
            ),
            checkout_interval=_coerce_float(
                env.get("ES_POOL_CHECKOUT_INTERVAL_SEC"), defaults.checkout_interval
            ),
            mysql_host=env.get("MYSQL_HOST", defaults.mysql_host),
            mysql_port=_coerce_int(env.get("MYSQL_PORT"), defaults.mysql_port),
            mysql_user=env.get("MYSQL_USER", defaults.mysql_user),
            mysql_password=env.get("MYSQL_PASSWORD", defaults.mysql_password),
            mysql_database=env.get("MYSQL_DATABASE", defaults.mysql_database),
            index_list_path=Path(env.get("INDEX_LIST_PATH", str(defaults.index_list_path))),
            schedule_term_ms=_coerce_int(
                env.get("SCHEDULE_TERM_MS"), defaults.schedule_term_ms
            ),
            schedule_timezone=env.get("SCHEDULE_TIMEZONE", defaults.schedule_timezone),
            log_dir=Path(log_dir) if log_dir else defaults.log_dir,
            log_backup_count=_coerce_int(
                env.get("LOG_BACKUP_COUNT"), defaults.log_backup_count
            ),
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
            failure_log_path=Path(failure_log) if failure_log else None,
        )

    def validate(self) -> None:
        if not self.es_nodes:
            raise ConfigurationError("ES_DB_URL: Elasticsearch 노드가 하나도 없습니다.")
        if self.es_pool_size < 1:
            raise ConfigurationError(f"ES_POOL_CNT 는 1 이상이어야 합니다: {self.es_pool_size}")
        if self.checkout_attempts < 1:
            raise ConfigurationError("checkout_attempts 는 1 이상이어야 합니다.")
        if self.schedule_term_ms <= 0:
            raise ConfigurationError("SCHEDULE_TERM_MS 는 양수여야 합니다.")
        self.tz()

    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.schedule_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(
                f"알 수 없는 시간대: {self.schedule_timezone!r}"
            ) from e

    @property
    def tick_seconds(self) -> float:
        return self.schedule_term_ms / 1000

    @property
    def resolved_failure_log_path(self) -> Path | None:
        if self.failure_log_path:
            return self.failure_log_path
        if self.log_dir:
            return self.log_dir / "failures.jsonl"
        return None


@dataclass(frozen=True)
class IndexDefinition:
    """스케줄 대상 인덱스 1건. 실행 시마다 그대로 복사되어 전달됨 (불변)."""

    index_name: str                 # alias 이름
    time: str                       # cron 표현식
    indexing_type: str              # static | dynamic
    function_name: str              # 핸들러 id
    sql_batch_size: int
    es_batch_size: int
    setting_path: Path | None = None  # 매핑/설정 JSON (static 필수)

    @classmethod
    def from_dict(cls, raw: dict, base_dir: Path | None = None) -> IndexDefinition:
        if not isinstance(raw, dict):
            raise ConfigurationError(f"인덱스 정의는 매핑이어야 합니다: {raw!r}")
        required = ("index_name", "time", "indexing_type", "function_name",
                    "sql_batch_size", "es_batch_size")
        missing = [k for k in required if raw.get(k) in (None, "")]
        if missing:
            raise ConfigurationError(
                f"인덱스 정의 필수 키 누락 {missing}: {raw.get('index_name', raw)}"
            )

        setting_path = raw.get("setting_path")
        if setting_path:
            setting_path = Path(setting_path)
            if base_dir and not setting_path.is_absolute():
                setting_path = base_dir / setting_path

        try:
            definition = cls(
                index_name=str(raw["index_name"]),
                time=str(raw["time"]),
                indexing_type=str(raw["indexing_type"]).lower(),
                function_name=str(raw["function_name"]),
                sql_batch_size=int(raw["sql_batch_size"]),
                es_batch_size=int(raw["es_batch_size"]),
                setting_path=setting_path or None,
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"인덱스 정의 값 오류: {raw} ({e})") from e

        definition.validate()
        return definition

    def validate(self) -> None:
        if self.indexing_type not in (STATIC, DYNAMIC):
            raise ConfigurationError(
                f"[{self.index_name}] indexing_type 은 static|dynamic: {self.indexing_type!r}"
            )
        if self.function_name not in KNOWN_HANDLERS:
            raise ConfigurationError(
                f"[{self.index_name}] 알 수 없는 function_name: {self.function_name!r}"
            )
        if KNOWN_HANDLERS[self.function_name] != self.indexing_type:
            raise ConfigurationError(
                f"[{self.index_name}] {self.function_name} 은 "
                f"{KNOWN_HANDLERS[self.function_name]} 핸들러입니다."
            )
        if self.sql_batch_size <= 0 or self.es_batch_size <= 0:
            raise ConfigurationError(f"[{self.index_name}] batch size 는 양수여야 합니다.")
        if self.indexing_type == STATIC and self.setting_path is None:
            raise ConfigurationError(f"[{self.index_name}] static 색인은 setting_path 필수")
        build_cron_trigger(self.time, "UTC")


def load_index_definitions(path: Path) -> list[IndexDefinition]:
    """YAML 파일 ({"index": [...]}) → IndexDefinition 리스트

    setting_path 상대 경로는 YAML 파일 위치 기준으로 해석.
    """
    if not path.exists():
        raise ConfigurationError(f"인덱스 정의 파일이 없습니다: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"YAML 파싱 실패: {path} ({e})") from e

    entries = raw.get("index") if isinstance(raw, dict) else None
    if not entries:
        raise ConfigurationError(f"'index' 목록이 비어 있습니다: {path}")

    definitions = [IndexDefinition.from_dict(e, base_dir=path.parent) for e in entries]

    pairs = [(d.index_name, d.function_name) for d in definitions]
    duplicated = {p for p in pairs if pairs.count(p) > 1}
    if duplicated:
        raise ConfigurationError(f"중복된 (index_name, function_name): {sorted(duplicated)}")
    return definitions
