"""원천 행 / 색인 문서 / 변경 집합 데이터 모델"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from .errors import ParseError

ES_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

CREATE = "create"
UPDATE = "update"
DELETE = "delete"


@dataclass(frozen=True)
class NodeEndpoint:
    """Elasticsearch 노드 1개의 접속 정보"""

    host: str
    username: str | None = None
    password: str | None = None

    @property
    def url(self) -> str:
        return self.host if "://" in self.host else f"http://{self.host}"

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        if self.username and self.password:
            return (self.username, self.password)
        return None


def _to_decimal(value, column: str) -> Decimal:
    if value is None:
        raise ParseError(f"{column} 값이 NULL 입니다.")
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise ParseError(f"{column} 숫자 변환 실패: {value!r}") from e


@dataclass
class SourceRecord:
    """가게 1건 × 추천 1건 조인 결과 행 (가게 키가 여러 행에 반복될 수 있음)"""

    seq: int
    name: str
    type: str | None
    address: str | None
    lat: Decimal
    lng: Decimal
    zero_possible: bool
    recommend_name: str | None = None
    location_city: str | None = None
    location_county: str | None = None
    location_district: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> SourceRecord:
        try:
            seq = int(row["seq"])
            name = row["name"]
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"원천 행 파싱 실패: {row!r}") from e
        if name is None:
            raise ParseError(f"seq={seq} name 이 NULL 입니다.")

        return cls(
            seq=seq,
            name=name,
            type=row.get("type"),
            address=row.get("address"),
            lat=_to_decimal(row.get("lat"), "lat"),
            lng=_to_decimal(row.get("lng"), "lng"),
            zero_possible=bool(row.get("zero_possible")),
            recommend_name=row.get("recommend_name"),
            location_city=row.get("location_city"),
            location_county=row.get("location_county"),
            location_district=row.get("location_district"),
        )


@dataclass
class StoreDocument:
    """중복 제거된 가게 1건 = ES 문서 1건"""

    timestamp: str
    seq: int
    name: str
    type: str | None
    address: str | None
    lat: Decimal
    lng: Decimal
    zero_possible: bool
    recommend_names: list[str] = field(default_factory=list)
    location_city: str | None = None
    location_county: str | None = None
    location_district: str | None = None
    major_type: list[int] = field(default_factory=list)
    sub_type: list[int] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: SourceRecord, timestamp: str) -> StoreDocument:
        return cls(
            timestamp=timestamp,
            seq=record.seq,
            name=record.name,
            type=record.type,
            address=record.address,
            lat=record.lat,
            lng=record.lng,
            zero_possible=record.zero_possible,
            recommend_names=[record.recommend_name] if record.recommend_name is not None else [],
            location_city=record.location_city,
            location_county=record.location_county,
            location_district=record.location_district,
        )

    def to_document(self) -> dict:
        """JSON 직렬화 가능한 ES _source"""
        return {
            "timestamp": self.timestamp,
            "seq": self.seq,
            "name": self.name,
            "type": self.type,
            "address": self.address,
            "lat": float(self.lat),
            "lng": float(self.lng),
            "zero_possible": self.zero_possible,
            "recommend_names": list(self.recommend_names),
            "location_city": self.location_city,
            "location_county": self.location_county,
            "location_district": self.location_district,
            "major_type": list(self.major_type),
            "sub_type": list(self.sub_type),
        }


@dataclass(frozen=True)
class TaxonomyRow:
    """가게 분류 링크 1행 (seq, 대분류, 소분류)"""

    seq: int
    major_type: int
    sub_type: int

    @classmethod
    def from_row(cls, row: dict) -> TaxonomyRow:
        try:
            return cls(int(row["seq"]), int(row["major_type"]), int(row["sub_type"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"분류 행 파싱 실패: {row!r}") from e


@dataclass(frozen=True)
class ChangeWindow:
    """증분 조회 조건: kind 단계에서 since 이후 변경분, as_of 시점 기준"""

    kind: str          # create | update | delete
    since: datetime    # 워터마크
    as_of: datetime    # 사이클 시작 시각 (UTC naive)


@dataclass
class ChangeSet:
    created: list[StoreDocument] = field(default_factory=list)
    updated: list[StoreDocument] = field(default_factory=list)
    deleted: list[StoreDocument] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)

    def counts(self) -> dict[str, int]:
        return {
            CREATE: len(self.created),
            UPDATE: len(self.updated),
            DELETE: len(self.deleted),
        }


def format_es_timestamp(value: datetime) -> str:
    return value.strftime(ES_TIMESTAMP_FORMAT)


def parse_es_timestamp(value: str) -> datetime:
    try:
        return datetime.strptime(value, ES_TIMESTAMP_FORMAT)
    except (TypeError, ValueError) as e:
        raise ParseError(f"timestamp 파싱 실패: {value!r}") from e
