"""cron 표현식 → APScheduler CronTrigger 변환

지원 형식:
  - 6필드: "초 분 시 일 월 요일"            예) "0 0 12 * * *"
  - 7필드: "초 분 시 일 월 요일 연도"
  - 5필드: 일반 crontab "분 시 일 월 요일"  (초 = 0)

'?' 는 '*' 로 취급. 요일 숫자는 APScheduler 규칙(0=월요일)을 따르므로
mon..sun 이름 사용을 권장.
"""

from __future__ import annotations

from datetime import tzinfo

from apscheduler.triggers.cron import CronTrigger

from .errors import ConfigurationError

_FIELDS = ("second", "minute", "hour", "day", "month", "day_of_week", "year")


def split_cron_fields(expression: str) -> dict[str, str]:
    """표현식을 CronTrigger 키워드 인자로 분해"""
    parts = [p.replace("?", "*") for p in expression.split()]

    if len(parts) == 5:
        parts = ["0", *parts]
    if len(parts) not in (6, 7):
        raise ConfigurationError(
            f"cron 표현식은 5~7개 필드여야 합니다: {expression!r}"
        )
    return dict(zip(_FIELDS, parts))


def build_cron_trigger(expression: str, timezone: tzinfo | str) -> CronTrigger:
    """표현식 검증 + CronTrigger 생성. 잘못된 값이면 ConfigurationError."""
    fields = split_cron_fields(expression)
    try:
        return CronTrigger(timezone=timezone, **fields)
    except ValueError as e:
        raise ConfigurationError(
            f"cron 표현식 파싱 실패: {expression!r} ({e})"
        ) from e
