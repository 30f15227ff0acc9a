"""설정 로드 / 검증"""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from index_sync.config import Config, load_index_definitions
from index_sync.errors import ConfigurationError

VALID_YAML = """
index:
  - index_name: stores
    time: "0 0 4 * * *"
    indexing_type: static
    setting_path: store_settings.json
    function_name: store_static_index
    sql_batch_size: 1000
    es_batch_size: 500
  - index_name: stores
    time: "0 */5 * * * *"
    indexing_type: dynamic
    function_name: store_dynamic_index
    sql_batch_size: 1000
    es_batch_size: 500
"""


def _write(td: str, text: str) -> Path:
    path = Path(td) / "index_list.yaml"
    path.write_text(text, encoding="utf-8")
    return path


# ============================================================
# 인덱스 정의 YAML
# ============================================================
def test_load_index_definitions():
    with tempfile.TemporaryDirectory() as td:
        definitions = load_index_definitions(_write(td, VALID_YAML))

        static, dynamic = definitions
        assert static.setting_path == Path(td) / "store_settings.json"
        assert static.indexing_type == "static"
        assert dynamic.setting_path is None
        assert dynamic.es_batch_size == 500


@pytest.mark.parametrize("old, new", [
    ("function_name: store_static_index", "function_name: store_full"),
    ("sql_batch_size: 1000\n    es_batch_size: 500\n  - ", "sql_batch_size: 0\n    es_batch_size: 500\n  - "),
    ('time: "0 0 4 * * *"', 'time: "0 0 99 * * *"'),
    ("    setting_path: store_settings.json\n", ""),
    ("indexing_type: dynamic", "indexing_type: static"),
    ("    time: \"0 */5 * * * *\"\n", ""),
])
def test_invalid_definitions_are_rejected(old, new):
    assert old in VALID_YAML
    with tempfile.TemporaryDirectory() as td:
        with pytest.raises(ConfigurationError):
            load_index_definitions(_write(td, VALID_YAML.replace(old, new, 1)))


def test_duplicate_definition_is_rejected():
    doubled = VALID_YAML + VALID_YAML.split("index:\n", 1)[1]
    with tempfile.TemporaryDirectory() as td:
        with pytest.raises(ConfigurationError):
            load_index_definitions(_write(td, doubled))


def test_missing_or_empty_file():
    with pytest.raises(ConfigurationError):
        load_index_definitions(Path("/nonexistent/index_list.yaml"))
    with tempfile.TemporaryDirectory() as td:
        with pytest.raises(ConfigurationError):
            load_index_definitions(_write(td, "index: []\n"))


# ============================================================
# 환경 변수
# ============================================================
def test_from_env_reads_dotenv_file():
    env_text = (
        "ES_DB_URL=es01:9200, https://es02:9200\n"
        "ES_ID=elastic\nES_PW=secret\nES_POOL_CNT=5\n"
        "MYSQL_PORT=3307\nSCHEDULE_TERM_MS=250\n"
    )
    with tempfile.TemporaryDirectory() as td, patch.dict(os.environ, {}, clear=True):
        env_file = Path(td) / ".env"
        env_file.write_text(env_text, encoding="utf-8")
        config = Config.from_env(env_file)

    assert config.es_nodes == ["http://es01:9200", "https://es02:9200"]
    assert (config.es_username, config.es_password) == ("elastic", "secret")
    assert config.es_pool_size == 5
    assert config.mysql_port == 3307
    assert config.tick_seconds == 0.25
    assert config.checkout_attempts == 10


def test_from_env_rejects_non_numeric():
    with patch.dict(os.environ, {"ES_POOL_CNT": "three"}, clear=True):
        with pytest.raises(ConfigurationError):
            Config.from_env(Path("/nonexistent/.env"))


@pytest.mark.parametrize("kwargs", [
    {"es_nodes": []},
    {"es_pool_size": 0},
    {"schedule_term_ms": 0},
    {"schedule_timezone": "Mars/Olympus"},
])
def test_validate(kwargs):
    with pytest.raises(ConfigurationError):
        Config(**kwargs).validate()


def test_failure_log_path_defaults_to_log_dir():
    assert Config(log_dir=Path("logs")).resolved_failure_log_path == Path("logs/failures.jsonl")
    assert Config(log_dir=None).resolved_failure_log_path is None
