"""
tests/conftest.py - pytest 공통 픽스처

HTTP 전송기 모킹, 고정 시계, 테스트용 실행 컨텍스트를 제공합니다.

Usage:
    def test_something(executor, transport):
        transport.send.return_value = HttpResponse(200, body={"value": []})
        executor.fetch(RequestDescriptor("subscriptions"))
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from azrecon.cache.store import CacheStore
from azrecon.config import ReconContext
from azrecon.parallel.executor import RequestExecutor
from azrecon.parallel.quiet import set_quiet
from azrecon.parallel.retry import RetryConfig

BASE_TIME = datetime(2024, 5, 1, 9, 0, 0)


class FrozenClock:
    """수동으로 진행시키는 시계"""

    def __init__(self, start: datetime = BASE_TIME):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


# =============================================================================
# 환경 설정
# =============================================================================


@pytest.fixture(autouse=True)
def reset_quiet_state():
    """테스트 간 quiet 상태 격리"""
    set_quiet(False)
    yield
    set_quiet(False)


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    """AZRECON_* 환경 변수 제거"""
    import os

    for name in list(os.environ):
        if name.startswith("AZRECON_"):
            monkeypatch.delenv(name, raising=False)


# =============================================================================
# 캐시 / 실행기 픽스처
# =============================================================================


@pytest.fixture
def clock():
    """고정 시계 (BASE_TIME에서 시작)"""
    return FrozenClock()


@pytest.fixture
def store(clock):
    """고정 시계를 사용하는 CacheStore"""
    return CacheStore(clock=clock)


@pytest.fixture
def ctx():
    """테스트용 실행 컨텍스트"""
    return ReconContext(
        token_provider=lambda namespace: f"token-{namespace}",
        endpoints={"arm": "https://arm.test", "graph": "https://graph.test"},
        max_workers=8,
    )


@pytest.fixture
def transport():
    """HttpTransport 모킹"""
    return MagicMock(spec=["send"])


@pytest.fixture
def sleeps():
    """백오프 대기 기록 (실제로 대기하지 않음)"""
    return []


@pytest.fixture
def executor(ctx, store, transport, sleeps):
    """모킹된 전송기와 가짜 sleep을 사용하는 RequestExecutor"""
    return RequestExecutor(
        ctx,
        store,
        transport=transport,
        retry_config=RetryConfig(max_retries=3, base_delay=5.0),
        sleep=sleeps.append,
    )


@pytest.fixture
def caplog_debug(caplog):
    """azrecon 로거 DEBUG 캡처"""
    caplog.set_level(logging.DEBUG, logger="azrecon")
    return caplog
