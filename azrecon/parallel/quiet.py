"""
azrecon/parallel/quiet.py - 요청 실행기 로그 억제 스위치

RequestExecutor는 재시도 대기, 캐시 히트, 페이지네이션 경고를 로그로 남깁니다.
CLI가 진행 표시를 띄운 채 fetch_many를 돌릴 때는 이 로그가 표시줄을 깨뜨리므로,
quiet 스위치가 켜진 스레드의 ERROR 미만 레코드는 루트 핸들러에서 버립니다.

스위치 값은 스레드마다 따로 저장됩니다. 워커 스레드는 새로 켜지지 않으므로
fetch_many가 제출 시점의 값을 _fetch_task 인자로 넘기고 inherit_quiet_state로 적용합니다.

Example:
    with quiet_mode():
        result = executor.fetch_many(descriptors)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

_state = threading.local()

# quiet_mode 중첩 깊이 (0이 되면 핸들러에서 필터 제거)
_active_blocks = 0
_blocks_lock = threading.Lock()
_filtered_handlers: list[logging.Handler] = []


class _QuietFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # 레코드를 만든 스레드에서 호출됨
        return record.levelno >= logging.ERROR or not is_quiet()


_quiet_filter = _QuietFilter()


def is_quiet() -> bool:
    return getattr(_state, "quiet", False)


def set_quiet(value: bool) -> None:
    """호출한 스레드의 스위치만 바꿈"""
    _state.quiet = value


@contextmanager
def inherit_quiet_state(parent_quiet: bool) -> Generator[None, None, None]:
    """fetch 작업 하나 동안 제출한 스레드의 스위치 값을 사용

    풀 스레드는 다음 작업에 재사용되므로 빠져나올 때 직전 값으로 되돌립니다.
    """
    saved = is_quiet()
    set_quiet(parent_quiet)
    try:
        yield
    finally:
        set_quiet(saved)


def _attach_filter() -> None:
    global _active_blocks
    with _blocks_lock:
        _active_blocks += 1
        if _active_blocks > 1:
            return
        # 자식 로거에서 전파된 레코드는 루트 로거의 필터를 건너뛰므로 핸들러에 붙임
        _filtered_handlers[:] = logging.getLogger().handlers
        for handler in _filtered_handlers:
            handler.addFilter(_quiet_filter)


def _detach_filter() -> None:
    global _active_blocks
    with _blocks_lock:
        _active_blocks -= 1
        if _active_blocks > 0:
            return
        for handler in _filtered_handlers:
            handler.removeFilter(_quiet_filter)
        _filtered_handlers.clear()


@contextmanager
def quiet_mode() -> Generator[None, None, None]:
    """블록 안에서 실행기의 경고/디버그 로그를 숨김

    블록을 연 스레드와 그 스레드가 fetch_many로 띄운 워커에만 적용됩니다.
    다른 스레드의 로그와 ERROR 레코드는 그대로 출력됩니다.
    """
    saved = is_quiet()
    set_quiet(True)
    _attach_filter()
    try:
        yield
    finally:
        set_quiet(saved)
        _detach_filter()
