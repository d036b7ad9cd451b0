"""
azrecon/parallel/retry.py - 응답 분류 및 재시도 정책

원격 호출 실패를 재시도/즉시 실패 판단 전에 예외 계층으로 분류하고,
쓰로틀링 대응 백오프 설정을 제공합니다.

분류 규칙:
    2xx                     -> 성공 (None)
    401, 403                -> AuthError (재시도 없음)
    404                     -> NotFoundError ("데이터 없음")
    429, 503 + Retry-After  -> ThrottledError (Retry-After 우선)
    408, 500, 502, 503, 504 -> TransientNetworkError
    기타 4xx/5xx            -> RequestError
    연결 실패/타임아웃      -> TransientNetworkError

주요 구성 요소:
- RetryConfig: 재시도 설정 (delay = base_delay * attempt)
- RetryState: 논리적 fetch 1건(전체 페이지 공유)의 재시도 상태
- classify_status / classify_exception: 실패 분류
- categorize_error / get_error_code: 결과 보고용 분류
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import requests

from azrecon.exceptions import (
    AuthError,
    FetchCancelledError,
    FetchError,
    MaxRetriesExceededError,
    NotFoundError,
    RequestError,
    SerializationError,
    ThrottledError,
    TransientNetworkError,
)

from .types import ErrorCategory

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({408, 500, 502, 503, 504})
AUTH_STATUS_CODES: frozenset[int] = frozenset({401, 403})


@dataclass
class RetryConfig:
    """재시도 설정

    Attributes:
        max_retries: 최대 재시도 횟수 (0이면 재시도 안함)
        base_delay: 기본 대기 시간 (초)
        max_delay: 계산된 백오프의 상한 (초)
        max_retry_after: 서버 Retry-After 값의 상한 (초)
        respect_retry_after: 서버 Retry-After 값을 우선 사용할지 여부
    """

    max_retries: int = 3
    base_delay: float = 5.0
    max_delay: float = 60.0
    max_retry_after: float = 300.0
    respect_retry_after: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """재시도 대기 시간 계산

        Args:
            attempt: 실패한 시도 번호 (1부터 시작)
            retry_after: 서버가 제시한 대기 시간 (초)

        Returns:
            대기 시간 (초)
        """
        if retry_after is not None and self.respect_retry_after:
            return min(max(retry_after, 0.0), self.max_retry_after)
        return min(self.base_delay * max(attempt, 1), self.max_delay)


@dataclass
class RetryState:
    """논리적 fetch 1건의 재시도 상태

    페이지네이션의 모든 페이지가 같은 상태를 공유하므로 재시도 예산도 fetch 전체에 한 번만 주어집니다.
    attempt는 wire 호출 수, failures는 그중 실패 횟수입니다.
    """

    max_attempts: int
    base_delay: float
    attempt: int = 0
    failures: int = 0
    last_error: Exception | None = None

    @property
    def exhausted(self) -> bool:
        return self.failures >= self.max_attempts

    def record_failure(self, error: Exception) -> None:
        self.failures += 1
        self.last_error = error


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Retry-After 헤더 파싱 (초 또는 HTTP-date)

    Returns:
        대기 시간 (초), 파싱 불가하면 None
    """
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None

    try:
        return max(float(value), 0.0)
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max((when - current).total_seconds(), 0.0)


def extract_error_message(body: Any) -> tuple[str | None, str | None]:
    """ARM/Graph 공통 에러 본문 {"error": {"code", "message"}} 파싱

    Returns:
        (에러 코드, 에러 메시지)
    """
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping):
            return error.get("code"), error.get("message")
        if isinstance(error, str):
            return error, body.get("error_description") or body.get("message")
    return None, None


def classify_status(
    status_code: int,
    headers: Mapping[str, str] | None = None,
    endpoint: str | None = None,
    body: Any = None,
) -> FetchError | None:
    """HTTP 상태 코드를 예외로 분류

    Args:
        status_code: HTTP 상태 코드
        headers: 응답 헤더 (Retry-After 조회용, 대소문자 무관 매핑 권장)
        endpoint: 로깅/예외용 엔드포인트
        body: 파싱된 응답 본문

    Returns:
        성공(2xx/3xx)이면 None, 실패면 분류된 예외 인스턴스
    """
    if status_code < 400:
        return None

    code, detail = extract_error_message(body)
    message = f"HTTP {status_code}"
    if code:
        message = f"{message} ({code})"
    if detail:
        message = f"{message}: {detail}"

    retry_after = None
    if headers:
        retry_after = parse_retry_after(_header(headers, "Retry-After"))

    if status_code in AUTH_STATUS_CODES:
        return AuthError(message, endpoint=endpoint, status_code=status_code)
    if status_code == 404:
        return NotFoundError(message, endpoint=endpoint, status_code=status_code)
    if status_code == 429 or (status_code == 503 and retry_after is not None):
        return ThrottledError(message, endpoint=endpoint, status_code=status_code, retry_after=retry_after)
    if status_code in TRANSIENT_STATUS_CODES:
        return TransientNetworkError(message, endpoint=endpoint, status_code=status_code)
    return RequestError(message, endpoint=endpoint, status_code=status_code)


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, val in headers.items():
        if key.lower() == lowered:
            return val
    return None


def classify_exception(error: Exception, endpoint: str | None = None) -> FetchError:
    """전송 계층 예외를 분류

    연결 실패와 타임아웃은 일시적 오류로, 나머지 requests 예외는 요청 오류로 봅니다.
    """
    if isinstance(error, FetchError):
        return error
    if isinstance(
        error,
        (requests.ConnectionError, requests.Timeout, ConnectionError, TimeoutError),
    ):
        return TransientNetworkError(
            f"네트워크 오류 ({error.__class__.__name__})",
            endpoint=endpoint,
            cause=error,
        )
    return RequestError(f"요청 오류 ({error.__class__.__name__})", endpoint=endpoint, cause=error)


def categorize_error(error: Exception) -> ErrorCategory:
    """예외를 ErrorCategory로 분류 (결과 보고용)"""
    if isinstance(error, MaxRetriesExceededError) and error.last_error is not None:
        return categorize_error(error.last_error)
    if isinstance(error, ThrottledError):
        return ErrorCategory.THROTTLING
    if isinstance(error, AuthError):
        return ErrorCategory.ACCESS_DENIED
    if isinstance(error, NotFoundError):
        return ErrorCategory.NOT_FOUND
    if isinstance(error, FetchCancelledError):
        return ErrorCategory.CANCELLED
    if isinstance(error, TransientNetworkError):
        if error.status_code == 408 or isinstance(error.cause, (requests.Timeout, TimeoutError)):
            return ErrorCategory.TIMEOUT
        if error.status_code is not None:
            return ErrorCategory.SERVICE_ERROR
        return ErrorCategory.NETWORK
    if isinstance(error, (RequestError, SerializationError, ValueError)):
        return ErrorCategory.INVALID_REQUEST
    if isinstance(error, (requests.Timeout, TimeoutError)):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (requests.ConnectionError, ConnectionError)):
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


def get_error_code(error: Exception) -> str:
    """예외에서 에러 코드 문자열 추출

    FetchError는 "HTTP {status}" 또는 예외 클래스명을 반환합니다.
    """
    status_code = getattr(error, "status_code", None)
    if isinstance(error, FetchError) and status_code is not None:
        return f"HTTP{status_code}"
    return error.__class__.__name__
