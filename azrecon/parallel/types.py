"""
azrecon/parallel/types.py - 요청 계층 타입 정의

요청 명세, 캐시 옵션, 취소 토큰, 병렬 실행 결과 타입을 정의합니다.

주요 구성 요소:
- ErrorCategory: 에러 분류
- RequestDescriptor: 논리적 요청 명세 (캐시 식별 단위)
- CacheOptions: fetch별 캐시 옵션
- CancelToken: 호출자 취소 + 데드라인
- FetchFailure / FetchOutcome: 개별 fetch 결과
- BatchItemResult: 배치 하위 요청 결과
- ParallelFetchResult: fetch_many 전체 결과
"""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from azrecon.exceptions import FetchCancelledError


class ErrorCategory(Enum):
    """에러 카테고리 분류"""

    THROTTLING = "throttling"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    SERVICE_ERROR = "service_error"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


# =============================================================================
# 요청 명세 / 옵션
# =============================================================================


@dataclass(frozen=True)
class RequestDescriptor:
    """논리적 요청 명세

    캐시 식별 요소는 (endpoint, 정규화된 params, 배치 모드)입니다.

    Attributes:
        endpoint: 네임스페이스 기본 URL 기준 상대 경로 또는 절대 URL
        method: HTTP 메서드
        params: 쿼리 파라미터
        body: 요청 본문 (JSON 직렬화 가능)
        namespace: API 패밀리 = 캐시 네임스페이스 ("arm", "graph")
        batchable: 배치 호출로 묶을 수 있는지 여부
        paginate: 연속 커서를 따라 전체 페이지를 누적할지 여부
        pagination_cursor: 이어서 조회할 커서(nextLink) URL
        correlation_id: 배치 하위 요청 식별자
        headers: 추가 헤더
    """

    endpoint: str
    method: str = "GET"
    params: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    namespace: str = "arm"
    batchable: bool = False
    paginate: bool = False
    pagination_cursor: str | None = None
    correlation_id: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.endpoint:
            raise ValueError("endpoint must not be empty")
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def with_cursor(self, cursor: str | None) -> RequestDescriptor:
        """커서를 교체한 복사본"""
        return replace(self, pagination_cursor=cursor)

    def with_correlation_id(self, correlation_id: str) -> RequestDescriptor:
        """correlation id를 지정한 복사본"""
        return replace(self, correlation_id=correlation_id)

    @property
    def label(self) -> str:
        """로깅용 짧은 식별자"""
        return f"{self.namespace}:{self.method} {self.endpoint}"


@dataclass
class CacheOptions:
    """fetch별 캐시 옵션

    Attributes:
        skip_cache: True면 캐시 조회를 건너뛰고 결과로 엔트리를 갱신
        expiration_minutes: TTL (분)
        max_cache_size: 네임스페이스 최대 항목 수 (0 이하면 무제한)
        compress: 페이로드 gzip 압축 여부
    """

    skip_cache: bool = False
    expiration_minutes: int = 30
    max_cache_size: int = 100
    compress: bool = False

    def __post_init__(self) -> None:
        if self.expiration_minutes < 0:
            raise ValueError(f"expiration_minutes must be >= 0, got {self.expiration_minutes}")


# =============================================================================
# 취소 토큰
# =============================================================================


class CancelToken:
    """호출자 제공 취소 플래그 + 절대 데드라인

    페이지 사이, 배치 호출 사이, 백오프 대기 전후에 확인됩니다.

    Args:
        timeout: 지금부터의 제한 시간 (초)
        deadline: time.monotonic() 기준 절대 데드라인 (timeout과 동시 지정 불가)

    Example:
        token = CancelToken(timeout=120)
        items = executor.fetch(descriptor, cancel=token)
    """

    def __init__(self, timeout: float | None = None, deadline: float | None = None):
        if timeout is not None and deadline is not None:
            raise ValueError("timeout과 deadline은 동시에 지정할 수 없습니다")
        if timeout is not None:
            deadline = time.monotonic() + timeout
        self._deadline = deadline
        self._event = threading.Event()

    def cancel(self) -> None:
        """취소 요청 (대기 중인 백오프도 즉시 깨움)"""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """데드라인까지 남은 시간 (데드라인 없으면 None)"""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def check(self, endpoint: str | None = None) -> None:
        """취소/데드라인 초과 시 FetchCancelledError 발생"""
        if self.cancelled:
            raise FetchCancelledError("호출자가 요청을 취소했습니다", endpoint=endpoint)
        if self.deadline_exceeded:
            raise FetchCancelledError("데드라인 초과", endpoint=endpoint)

    def wait(self, seconds: float, endpoint: str | None = None) -> None:
        """최대 seconds 동안 대기 (취소 시 즉시 깨어나 예외 발생)"""
        self.check(endpoint)
        remaining = self.remaining()
        timeout = seconds if remaining is None else min(seconds, remaining)
        self._event.wait(timeout)
        self.check(endpoint)


# =============================================================================
# 실행 결과
# =============================================================================


@dataclass
class FetchFailure:
    """fetch 실패 정보

    Attributes:
        identifier: 요청 식별자 (RequestDescriptor.label)
        category: 에러 카테고리
        error_code: 에러 코드 (예외 클래스명 또는 서버 에러 코드)
        message: 에러 메시지
        status_code: HTTP 상태 코드
        retries: 재시도 횟수
        timestamp: 발생 시각
        original_exception: 원본 예외
    """

    identifier: str
    category: ErrorCategory
    error_code: str
    message: str
    status_code: int | None = None
    retries: int = 0
    timestamp: datetime = field(default_factory=datetime.now)
    original_exception: Exception | None = field(default=None, repr=False)

    def is_retryable(self) -> bool:
        return self.category in (ErrorCategory.THROTTLING, ErrorCategory.NETWORK, ErrorCategory.TIMEOUT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "category": self.category.value,
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "retries": self.retries,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.identifier}: {self.error_code} - {self.message}"


@dataclass
class FetchOutcome:
    """개별 fetch 결과

    Attributes:
        descriptor: 요청 명세
        success: 성공 여부
        data: 결과 데이터 (404면 None 또는 빈 리스트)
        error: 실패 정보
        from_cache: 캐시 히트 여부
        duration_ms: 소요 시간 (밀리초)
    """

    descriptor: RequestDescriptor
    success: bool
    data: Any = None
    error: FetchFailure | None = None
    from_cache: bool = False
    duration_ms: float = 0.0

    def __str__(self) -> str:
        if self.success:
            source = "cache" if self.from_cache else "remote"
            return f"OK {self.descriptor.label} ({source}, {self.duration_ms:.0f}ms)"
        return f"FAIL {self.descriptor.label}: {self.error}"


class BatchItemStatus(Enum):
    """배치 하위 요청 상태"""

    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class BatchItemResult:
    """배치 하위 요청 결과 (correlation id 단위)

    Attributes:
        correlation_id: 하위 요청 식별자
        descriptor: 요청 명세
        status: OK / NOT_FOUND / ERROR
        status_code: 하위 응답 HTTP 상태 코드 (캐시 히트면 None)
        data: 응답 본문
        error: 실패 예외 (status=ERROR일 때)
        from_cache: 캐시 히트 여부
    """

    correlation_id: str
    descriptor: RequestDescriptor
    status: BatchItemStatus
    status_code: int | None = None
    data: Any = None
    error: Exception | None = None
    from_cache: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == BatchItemStatus.OK

    @property
    def not_found(self) -> bool:
        return self.status == BatchItemStatus.NOT_FOUND


@dataclass(frozen=True)
class ParallelFetchResult:
    """fetch_many 전체 결과 (입력 순서 유지)"""

    results: tuple[FetchOutcome, ...] = ()

    @property
    def successful(self) -> list[FetchOutcome]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[FetchOutcome]:
        return [r for r in self.results if not r.success]

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def cache_hit_count(self) -> int:
        return sum(1 for r in self.results if r.from_cache)

    @property
    def total_duration_ms(self) -> float:
        return sum(r.duration_ms for r in self.results)

    def get_data(self) -> list[Any]:
        """성공 결과 데이터 목록 (None 제외)"""
        return [r.data for r in self.results if r.success and r.data is not None]

    def get_flat_data(self) -> list[Any]:
        """리스트 결과는 펼쳐서 반환"""
        flat: list[Any] = []
        for data in self.get_data():
            if isinstance(data, list):
                flat.extend(data)
            else:
                flat.append(data)
        return flat

    def get_errors(self) -> list[FetchFailure]:
        return [r.error for r in self.results if r.error is not None]

    def get_errors_by_category(self) -> dict[ErrorCategory, list[FetchFailure]]:
        grouped: dict[ErrorCategory, list[FetchFailure]] = {}
        for error in self.get_errors():
            grouped.setdefault(error.category, []).append(error)
        return grouped

    def get_error_summary(self) -> str:
        """카테고리별 실패 요약 문자열"""
        errors = self.get_errors()
        if not errors:
            return "실패 없음"

        lines = [f"총 {len(errors)}개 요청 실패"]
        for category, items in self.get_errors_by_category().items():
            lines.append(f"  [{category.value}] {len(items)}건")
            for item in items[:5]:
                lines.append(f"    - {item.identifier}: {item.message}")
            if len(items) > 5:
                lines.append(f"    ... 외 {len(items) - 5}건")
        return "\n".join(lines)
