"""
azrecon/parallel/transport.py - HTTP 전송 계층

requests.Session 기반 전송기와 전송 계층 중립 응답 타입을 제공합니다.
재시도는 RequestExecutor가 담당하므로 어댑터 레벨 재시도는 끕니다.

주요 구성 요소:
- HttpResponse: 상태 코드 + 대소문자 무관 헤더 + 파싱된 JSON 본문
- HttpTransport: 전송기 프로토콜 (테스트에서 가짜 구현으로 교체)
- RequestsTransport: 연결 풀이 설정된 requests 전송기

Example:
    transport = RequestsTransport(pool_size=100)
    response = transport.send("GET", url, headers=ctx.headers_for("arm"), timeout=ctx.timeout)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 100  # max_workers 이상 권장


@dataclass
class HttpResponse:
    """전송 계층 중립 HTTP 응답

    Attributes:
        status_code: HTTP 상태 코드
        headers: 응답 헤더 (대소문자 무관)
        body: 파싱된 JSON 본문 (본문이 없거나 JSON이 아니면 None)
        text: 원본 본문 텍스트
    """

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    text: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, CaseInsensitiveDict):
            self.headers = CaseInsensitiveDict(self.headers or {})

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @classmethod
    def from_requests(cls, response: requests.Response) -> HttpResponse:
        """requests.Response 변환"""
        body: Any = None
        text = response.text or ""
        if text.strip():
            try:
                body = response.json()
            except ValueError:
                logger.debug(f"JSON이 아닌 응답 본문 ({response.status_code}, {len(text)} bytes)")
        return cls(status_code=response.status_code, headers=response.headers, body=body, text=text)


class HttpTransport(Protocol):
    """HTTP 전송기 프로토콜"""

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        timeout: tuple[float, float] | float | None = None,
    ) -> HttpResponse: ...


class RequestsTransport:
    """requests.Session 기반 전송기

    Args:
        session: 사용할 Session (None이면 새로 생성)
        pool_size: HTTPS 연결 풀 크기
    """

    def __init__(self, session: requests.Session | None = None, pool_size: int = DEFAULT_POOL_SIZE):
        self._session = session or requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        timeout: tuple[float, float] | float | None = None,
    ) -> HttpResponse:
        """요청 전송

        Raises:
            requests.RequestException: 연결 실패, 타임아웃 등 (호출자가 분류)
        """
        response = self._session.request(
            method,
            url,
            headers=dict(headers),
            params=dict(params) if params else None,
            json=json_body,
            timeout=timeout,
        )
        try:
            return HttpResponse.from_requests(response)
        finally:
            response.close()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> RequestsTransport:
        return self

    def __exit__(self, *args) -> None:
        self.close()
