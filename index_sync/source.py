"""MySQL 원천 데이터: 가게/추천/위치/분류 조회 + 색인 워터마크

pymysql 은 동기 드라이버이므로 각 조회를 run_in_executor 로 감싸
다른 인덱스의 스케줄 루프를 막지 않는다.

페이지는 "가게 키" 단위로 자른다: 먼저 조건에 맞는 seq 를 LIMIT 만큼 고르고,
그 seq 들의 조인 행을 전부 가져오므로 한 가게의 행이 두 페이지에 걸치지 않는다.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from datetime import datetime
from typing import Sequence

import pymysql

from .config import Config, IndexDefinition
from .errors import DataIntegrityError
from .log import get_logger
from .models import CREATE, DELETE, UPDATE, ChangeWindow, SourceRecord, TaxonomyRow

logger = get_logger("source")

# 추천은 활성(recommend_yn='Y') + 노출 기간 내(recommend_end_dt > as_of) 만 조인
_JOINS = (
    "FROM store s "
    "INNER JOIN store_location_info_tbl sl ON sl.seq = s.seq "
    "LEFT JOIN zero_possible_market zpm ON zpm.seq = s.seq "
    "LEFT JOIN store_recommend_tbl sr ON sr.seq = s.seq "
    "LEFT JOIN recommend_tbl r ON r.recommend_seq = sr.recommend_seq "
    "AND r.recommend_yn = 'Y' AND sr.recommend_end_dt > %s "
)

_ROW_COLUMNS = (
    "SELECT s.seq, s.name, s.type, "
    "(zpm.name IS NOT NULL) AS zero_possible, "
    "sl.address, sl.lat, sl.lng, "
    "sl.location_city, sl.location_county, sl.location_district, "
    "r.recommend_name "
)

# 변경 감지 대상 테이블 (하나라도 워터마크 이후면 변경으로 간주)
_TRACKED_ALIASES = ("s", "zpm", "sr", "r", "sl")

# 단계별 (use_yn, 시각 컬럼)
_PHASE_FILTERS = {
    CREATE: ("Y", "reg_dt"),
    UPDATE: ("Y", "chg_dt"),
    DELETE: ("N", "chg_dt"),
}


def _changed_filter(kind: str, since: datetime) -> tuple[str, list]:
    try:
        use_yn, column = _PHASE_FILTERS[kind]
    except KeyError:
        raise ValueError(f"알 수 없는 변경 단계: {kind!r}") from None
    any_changed = " OR ".join(f"{a}.{column} > %s" for a in _TRACKED_ALIASES)
    return f"s.use_yn = %s AND ({any_changed})", [use_yn] + [since] * len(_TRACKED_ALIASES)


def _paged_query(
    where: str, params: list, cursor: int | None, batch_size: int, as_of: datetime
) -> tuple[str, list]:
    """where 조건의 다음 batch_size 개 가게 키 → 해당 가게들의 전체 조인 행"""
    key_where = where
    key_params = list(params)
    if cursor is not None:
        key_where += " AND s.seq > %s"
        key_params.append(cursor)

    sql = (
        _ROW_COLUMNS
        + _JOINS
        + "INNER JOIN ("
        + "SELECT DISTINCT s.seq "
        + _JOINS
        + f"WHERE {key_where} ORDER BY s.seq LIMIT %s"
        + ") page ON page.seq = s.seq "
        + "ORDER BY s.seq"
    )
    return sql, [as_of, as_of, *key_params, batch_size]


class MySQLDataSource:
    def __init__(self, config: Config):
        self.config = config

    def connect(self):
        return pymysql.connect(
            host=self.config.mysql_host,
            port=self.config.mysql_port,
            user=self.config.mysql_user,
            password=self.config.mysql_password,
            database=self.config.mysql_database,
            charset=self.config.mysql_charset,
            cursorclass=pymysql.cursors.DictCursor,
            autocommit=False,
        )

    @contextmanager
    def cursor(self):
        conn = self.connect()
        try:
            with conn.cursor() as cursor:
                yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    # ================================================================
    # 가게 행 조회
    # ================================================================

    def _select_records(self, sql: str, params: list) -> list[SourceRecord]:
        with self.cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        return [SourceRecord.from_row(row) for row in rows]

    async def fetch_snapshot_page(
        self, cursor: int | None, batch_size: int, as_of: datetime
    ) -> list[SourceRecord]:
        sql, params = _paged_query("s.use_yn = %s", ["Y"], cursor, batch_size, as_of)
        return await self._run(self._select_records, sql, params)

    async def fetch_changed_page(
        self, window: ChangeWindow, cursor: int | None, batch_size: int
    ) -> list[SourceRecord]:
        where, params = _changed_filter(window.kind, window.since)
        sql, params = _paged_query(where, params, cursor, batch_size, window.as_of)
        return await self._run(self._select_records, sql, params)

    # ================================================================
    # 분류 (대분류 / 소분류)
    # ================================================================

    def _select_taxonomy(self, keys: Sequence[int] | None) -> list[TaxonomyRow]:
        sql = (
            "SELECT stl.seq, sts.major_type, stl.sub_type "
            "FROM store_type_link_tbl stl "
            "INNER JOIN store_type_sub sts ON sts.sub_type = stl.sub_type "
        )
        params: list = []
        if keys is not None:
            if not keys:
                return []
            sql += f"WHERE stl.seq IN ({', '.join(['%s'] * len(keys))}) "
            params = list(keys)
        sql += "ORDER BY stl.seq"

        with self.cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        return [TaxonomyRow.from_row(row) for row in rows]

    async def fetch_taxonomy(self, keys: Sequence[int] | None = None) -> list[TaxonomyRow]:
        return await self._run(self._select_taxonomy, keys)

    # ================================================================
    # 워터마크 (elastic_index_info_tbl)
    # ================================================================

    def _select_watermark(self, index_name: str) -> datetime:
        with self.cursor() as cursor:
            cursor.execute(
                "SELECT chg_dt FROM elastic_index_info_tbl WHERE index_name=%s",
                (index_name,),
            )
            row = cursor.fetchone()
        if not row or row.get("chg_dt") is None:
            raise DataIntegrityError(
                f"elastic_index_info_tbl 에 워터마크가 없습니다: {index_name}"
            )
        return row["chg_dt"]

    async def read_watermark(self, definition: IndexDefinition) -> datetime:
        return await self._run(self._select_watermark, definition.index_name)

    def _update_watermark(self, index_name: str, timestamp: datetime) -> int:
        # 뒤로 가는 갱신은 조건에서 걸러짐
        with self.cursor() as cursor:
            cursor.execute(
                "UPDATE elastic_index_info_tbl SET chg_dt=%s "
                "WHERE index_name=%s AND chg_dt <= %s",
                (timestamp, index_name, timestamp),
            )
            return cursor.rowcount

    async def write_watermark(self, definition: IndexDefinition, timestamp: datetime) -> None:
        updated = await self._run(self._update_watermark, definition.index_name, timestamp)
        if not updated:
            logger.warning(
                f"[yellow][{definition.index_name}] 워터마크 미갱신[/yellow] "
                f"(행 없음 또는 저장된 값이 {timestamp} 보다 최신)"
            )
