# minifeed/core/exceptions.py
from typing import Optional


class FeedError(Exception):
    """피드 도메인에서 발생하는 모든 예외의 기반 클래스."""
    error_code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {"error_code": self.error_code, "message": self.message}


class UnauthenticatedError(FeedError):
    """인증된 사용자(principal) 없이 변경 작업을 요청한 경우."""
    error_code = "UNAUTHENTICATED"
    status_code = 401


class NotFoundError(FeedError):
    """대상 게시글이 존재하지 않는 경우."""
    error_code = "RESOURCE_NOT_FOUND"
    status_code = 404


class InvalidArgumentError(FeedError):
    """게시글/댓글 내용이 비어 있는 경우."""
    error_code = "VALIDATION_ERROR"
    status_code = 400


class BackingStoreError(FeedError):
    """
    저장소(Firestore) 또는 인증 제공자(Firebase Auth)에서 올라온 모든 실패를 감쌉니다.
    트랜잭션 커밋 실패, 네트워크 오류, 실시간 구독 연결 종료를 포함합니다.
    """
    error_code = "BACKING_STORE_ERROR"
    status_code = 503
