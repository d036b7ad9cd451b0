"""
azrecon/exceptions.py - 통합 예외 계층 구조

요청 계층과 캐시 계층에서 사용되는 예외 클래스들을 정의합니다.
원격 호출 실패는 재시도 여부 판단 전에 이 계층으로 분류됩니다.

예외 계층 구조:
    AzReconError (베이스)
    ├── FetchError (원격 호출 관련)
    │   ├── TransientNetworkError   - 백오프 후 재시도
    │   ├── ThrottledError          - 서버 Retry-After 힌트 존중하여 재시도
    │   ├── AuthError               - 즉시 실패 (재시도 없음)
    │   ├── NotFoundError           - "데이터 없음"으로 처리
    │   ├── RequestError            - 재시도 불가능한 기타 4xx
    │   ├── MaxRetriesExceededError - 재시도 예산 소진
    │   └── FetchCancelledError     - 취소/데드라인 초과
    ├── CacheError (캐시 관련)
    │   └── SerializationError      - write-through 경로에서만 발생, 호출자에게 전파 안 됨
    └── ConfigError (설정 관련)
        └── UnknownResourceTypeError

Usage:
    from azrecon.exceptions import AuthError, is_throttling

    try:
        data = executor.fetch(descriptor)
    except AuthError as e:
        console.print(format_error_for_user(e))
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# 베이스 예외
# =============================================================================


class AzReconError(Exception):
    """azrecon 기본 예외 클래스

    Attributes:
        message: 에러 메시지
        cause: 원인 예외 (체이닝용)
        details: 추가 상세 정보
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """예외 정보를 딕셔너리로 반환"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "cause": str(self.cause) if self.cause else None,
            "details": self.details,
        }


# =============================================================================
# 원격 호출 관련 예외
# =============================================================================


class FetchError(AzReconError):
    """원격 API 호출 관련 예외

    Attributes:
        endpoint: 호출 대상 엔드포인트 (URL 또는 경로)
        status_code: HTTP 상태 코드 (네트워크 에러면 None)
    """

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.endpoint = endpoint
        self.status_code = status_code
        if endpoint:
            self.details["endpoint"] = endpoint
        if status_code is not None:
            self.details["status_code"] = status_code


class TransientNetworkError(FetchError):
    """일시적 네트워크/서버 오류 (연결 실패, 타임아웃, 5xx)"""

    pass


class ThrottledError(FetchError):
    """쓰로틀링 (HTTP 429)

    Attributes:
        retry_after: 서버가 제시한 대기 시간 (초, 없으면 None)
    """

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = 429,
        retry_after: float | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, endpoint=endpoint, status_code=status_code, cause=cause)
        self.retry_after = retry_after
        if retry_after is not None:
            self.details["retry_after"] = retry_after


class AuthError(FetchError):
    """인증/인가 실패 (HTTP 401/403) - 스스로 해소되지 않으므로 재시도하지 않음"""

    pass


class NotFoundError(FetchError):
    """리소스 없음 (HTTP 404) - 실패가 아닌 "데이터 없음" 신호"""

    pass


class RequestError(FetchError):
    """재시도 불가능한 기타 요청 오류 (400, 409 등)"""

    pass


class MaxRetriesExceededError(FetchError):
    """재시도 예산 소진

    Attributes:
        attempts: 총 시도 횟수
        last_error: 마지막으로 발생한 예외
    """

    def __init__(
        self,
        endpoint: str | None,
        attempts: int,
        last_error: Exception | None = None,
    ):
        message = f"최대 재시도 횟수 초과 ({attempts}회 시도)"
        status_code = getattr(last_error, "status_code", None)
        super().__init__(message, endpoint=endpoint, status_code=status_code, cause=last_error)
        self.attempts = attempts
        self.last_error = last_error
        self.details["attempts"] = attempts


class FetchCancelledError(FetchError):
    """호출자가 취소했거나 데드라인이 지난 경우"""

    pass


# =============================================================================
# 캐시 관련 예외
# =============================================================================


class CacheError(AzReconError):
    """캐시 관련 예외"""

    def __init__(
        self,
        message: str,
        namespace: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.namespace = namespace
        self.key = key
        if namespace:
            self.details["namespace"] = namespace
        if key:
            self.details["key"] = key


class SerializationError(CacheError):
    """캐시 값 직렬화/역직렬화 실패"""

    pass


# =============================================================================
# 설정 관련 예외
# =============================================================================


class ConfigError(AzReconError):
    """설정 관련 예외"""

    def __init__(
        self,
        key: str,
        message: str,
        cause: Exception | None = None,
    ):
        full_message = f"설정 오류 [{key}]: {message}"
        super().__init__(full_message, cause)
        self.config_key = key
        self.details["config_key"] = key


class UnknownResourceTypeError(ConfigError, KeyError):
    """레지스트리에 등록되지 않은 리소스 타입 (KeyError로도 잡을 수 있음)"""

    def __init__(self, resource_type: str):
        super().__init__("resource_type", f"알 수 없는 리소스 타입 '{resource_type}'")
        self.resource_type = resource_type


# =============================================================================
# 예외 유틸리티 함수
# =============================================================================


def is_throttling(error: Exception) -> bool:
    """쓰로틀링 오류인지 확인"""
    if isinstance(error, ThrottledError):
        return True
    return getattr(error, "status_code", None) == 429


def is_auth_error(error: Exception) -> bool:
    """인증/인가 오류인지 확인"""
    if isinstance(error, AuthError):
        return True
    return getattr(error, "status_code", None) in (401, 403)


def is_not_found(error: Exception) -> bool:
    """리소스 없음 오류인지 확인"""
    if isinstance(error, NotFoundError):
        return True
    return getattr(error, "status_code", None) == 404


def is_retryable(error: Exception) -> bool:
    """재시도 가능한 오류인지 확인

    쓰로틀링과 일시적 네트워크 오류만 재시도 대상입니다.
    """
    if isinstance(error, (ThrottledError, TransientNetworkError)):
        return True
    if isinstance(error, FetchError):
        return False
    return isinstance(error, (ConnectionError, TimeoutError))


def format_error_for_user(error: Exception) -> str:
    """사용자에게 표시할 에러 메시지 포맷팅

    Args:
        error: 예외

    Returns:
        사용자 친화적인 에러 메시지
    """
    if isinstance(error, AuthError):
        return "권한이 없거나 토큰이 만료되었습니다. 토큰과 역할 할당을 확인하세요."
    if isinstance(error, ThrottledError):
        return "요청이 너무 많습니다. 잠시 후 다시 시도하세요."
    if isinstance(error, MaxRetriesExceededError):
        return f"재시도 후에도 실패했습니다: {error.last_error or error.message}"
    if isinstance(error, AzReconError):
        return str(error)
    return f"{error.__class__.__name__}: {error}"
