"""
azrecon/config.py - 실행 컨텍스트 및 설정

전역 가변 상태(공유 세션/인증 헤더) 대신, 시작 시 한 번 생성되어 이후 읽기 전용으로
사용되는 ReconContext를 RequestExecutor에 명시적으로 전달합니다.

주요 구성 요소:
- ReconContext: 불변 실행 컨텍스트 (토큰 공급자, API 엔드포인트, User-Agent, 타임아웃)
- ReconSettings: 환경 변수(AZRECON_*) 기반 설정 로더

Example:
    from azrecon.config import ReconSettings

    settings = ReconSettings.from_env()
    ctx = settings.to_context()
    executor = RequestExecutor(ctx, CacheStore(), retry_config=settings.retry_config())
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from azrecon import __version__
from azrecon.exceptions import ConfigError

if TYPE_CHECKING:
    from azrecon.parallel.retry import RetryConfig
    from azrecon.parallel.types import CacheOptions, RequestDescriptor

# API 패밀리(캐시 네임스페이스)별 기본 엔드포인트
DEFAULT_ENDPOINTS: dict[str, str] = {
    "arm": "https://management.azure.com",
    "graph": "https://graph.microsoft.com",
}

DEFAULT_USER_AGENT = f"azrecon/{__version__}"
DEFAULT_CONNECT_TIMEOUT = 10.0  # 초
DEFAULT_READ_TIMEOUT = 30.0  # 초
DEFAULT_MAX_WORKERS = 100

# 환경 변수 접두사
ENV_PREFIX = "AZRECON_"


@dataclass(frozen=True)
class ReconContext:
    """불변 실행 컨텍스트

    Attributes:
        token_provider: 네임스페이스 -> bearer 토큰 콜백 (None이면 Authorization 헤더 생략)
        endpoints: 네임스페이스 -> 기본 URL 매핑 (읽기 전용으로 고정됨)
        user_agent: User-Agent 헤더 값
        connect_timeout: 연결 타임아웃 (초)
        read_timeout: 읽기 타임아웃 (초)
        max_workers: 병렬 실행 최대 동시 작업 수
    """

    token_provider: Callable[[str], str] | None = None
    endpoints: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    user_agent: str = DEFAULT_USER_AGENT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS

    def __post_init__(self) -> None:
        object.__setattr__(self, "endpoints", MappingProxyType(dict(self.endpoints)))
        if self.max_workers < 1:
            raise ConfigError("max_workers", f"1 이상이어야 합니다 (현재: {self.max_workers})")

    @property
    def timeout(self) -> tuple[float, float]:
        """requests 호환 (connect, read) 타임아웃"""
        return (self.connect_timeout, self.read_timeout)

    def base_url(self, namespace: str) -> str:
        """네임스페이스의 기본 URL 반환"""
        try:
            return self.endpoints[namespace].rstrip("/")
        except KeyError:
            raise ConfigError("endpoints", f"등록되지 않은 네임스페이스 '{namespace}'") from None

    def url_for(self, descriptor: RequestDescriptor) -> str:
        """요청 명세의 전체 URL 생성

        엔드포인트가 절대 URL이면 그대로 사용하고, 아니면 네임스페이스 기본 URL에 붙입니다.
        """
        endpoint = descriptor.endpoint
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url(descriptor.namespace)}/{endpoint.lstrip('/')}"

    def headers_for(self, namespace: str) -> dict[str, str]:
        """네임스페이스 호출용 공통 헤더 생성"""
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }
        if self.token_provider is not None:
            headers["Authorization"] = f"Bearer {self.token_provider(namespace)}"
        return headers


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(ENV_PREFIX + name, f"정수가 아닙니다: '{raw}'", cause=e) from e


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(ENV_PREFIX + name, f"숫자가 아닙니다: '{raw}'", cause=e) from e


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigError(ENV_PREFIX + name, f"불리언 값이 아닙니다: '{raw}'")


@dataclass
class ReconSettings:
    """환경 변수 기반 실행 설정

    Attributes:
        max_workers: 병렬 실행 최대 동시 작업 수 (AZRECON_MAX_WORKERS)
        cache_ttl_minutes: 기본 캐시 TTL (AZRECON_CACHE_TTL_MINUTES)
        cache_max_size: 네임스페이스별 최대 캐시 항목 수 (AZRECON_CACHE_MAX_SIZE)
        cache_compress: 캐시 압축 여부 (AZRECON_CACHE_COMPRESS)
        max_retries: 최대 재시도 횟수 (AZRECON_MAX_RETRIES)
        base_delay: 재시도 기본 대기 시간, 초 (AZRECON_BASE_DELAY)
        user_agent: User-Agent 헤더 (AZRECON_USER_AGENT)
        access_token: ARM 토큰 (AZRECON_ACCESS_TOKEN)
        graph_token: Graph 토큰 (AZRECON_GRAPH_TOKEN, 없으면 access_token 사용)
    """

    max_workers: int = DEFAULT_MAX_WORKERS
    cache_ttl_minutes: int = 30
    cache_max_size: int = 100
    cache_compress: bool = False
    max_retries: int = 3
    base_delay: float = 5.0
    user_agent: str = DEFAULT_USER_AGENT
    access_token: str | None = field(default=None, repr=False)
    graph_token: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ReconSettings:
        """환경 변수에서 설정 로드

        Args:
            environ: 환경 변수 매핑 (None이면 os.environ)

        Raises:
            ConfigError: 값 형식이 잘못된 경우
        """
        env = os.environ if environ is None else environ
        return cls(
            max_workers=_env_int(env, "MAX_WORKERS", DEFAULT_MAX_WORKERS),
            cache_ttl_minutes=_env_int(env, "CACHE_TTL_MINUTES", 30),
            cache_max_size=_env_int(env, "CACHE_MAX_SIZE", 100),
            cache_compress=_env_bool(env, "CACHE_COMPRESS", False),
            max_retries=_env_int(env, "MAX_RETRIES", 3),
            base_delay=_env_float(env, "BASE_DELAY", 5.0),
            user_agent=env.get(ENV_PREFIX + "USER_AGENT") or DEFAULT_USER_AGENT,
            access_token=env.get(ENV_PREFIX + "ACCESS_TOKEN") or None,
            graph_token=env.get(ENV_PREFIX + "GRAPH_TOKEN") or None,
        )

    def _token_for(self, namespace: str) -> str:
        token = self.graph_token if namespace == "graph" and self.graph_token else self.access_token
        if not token:
            raise ConfigError(f"{ENV_PREFIX}ACCESS_TOKEN", f"'{namespace}' 호출에 사용할 토큰이 없습니다")
        return token

    def to_context(self, **overrides: Any) -> ReconContext:
        """설정으로부터 ReconContext 생성"""
        has_token = bool(self.access_token or self.graph_token)
        params: dict[str, Any] = {
            "token_provider": self._token_for if has_token else None,
            "user_agent": self.user_agent,
            "max_workers": min(max(self.max_workers, 1), DEFAULT_MAX_WORKERS),
        }
        params.update(overrides)
        return ReconContext(**params)

    def cache_options(self, **overrides: Any) -> CacheOptions:
        """설정 기본값이 반영된 CacheOptions 생성"""
        from azrecon.parallel.types import CacheOptions

        params: dict[str, Any] = {
            "expiration_minutes": self.cache_ttl_minutes,
            "max_cache_size": self.cache_max_size,
            "compress": self.cache_compress,
        }
        params.update(overrides)
        return CacheOptions(**params)

    def retry_config(self) -> RetryConfig:
        """설정 기본값이 반영된 RetryConfig 생성"""
        from azrecon.parallel.retry import RetryConfig

        return RetryConfig(max_retries=self.max_retries, base_delay=self.base_delay)
