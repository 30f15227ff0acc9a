"""index_sync 예외 계층

모든 예외는 IndexSyncError를 상속하며, 스케줄러/CLI 경계에서 한 번에 잡아 로깅한다.
"""

from __future__ import annotations


class IndexSyncError(Exception):
    """패키지 공통 베이스 예외"""


class ConfigurationError(IndexSyncError):
    """설정 누락/오류: 서비스 시작 전에 치명적"""


class ConnectionExhausted(IndexSyncError):
    """커넥션 풀 checkout 최대 시도 횟수 초과"""

    def __init__(self, attempts: int):
        super().__init__(
            f"Cannot Find Elasticsearch Connection (attempts={attempts})"
        )
        self.attempts = attempts


class RemoteProtocolError(IndexSyncError):
    """검색 엔진이 실패 상태 코드를 반환함. 원본 응답 본문을 보존한다."""

    def __init__(self, operation: str, status: int, body):
        super().__init__(f"[{operation}] status={status} body={body}")
        self.operation = operation
        self.status = status
        self.body = body


class AllNodesFailed(IndexSyncError):
    """모든 노드에서 실패. 마지막 에러를 함께 보관."""

    def __init__(self, last_error: BaseException | None):
        super().__init__(f"All Elasticsearch nodes failed. Last error: {last_error}")
        self.last_error = last_error


class DataIntegrityError(IndexSyncError):
    """원천 데이터 불일치 (누락된 분류 키, 커서 역행, 워터마크 행 없음 등)"""


class ParseError(IndexSyncError):
    """행/응답 필드 파싱 실패"""
