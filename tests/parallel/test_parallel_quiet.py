"""
tests/parallel/test_parallel_quiet.py - azrecon/parallel/quiet.py 테스트
"""

import logging
import threading

from azrecon.parallel.quiet import inherit_quiet_state, is_quiet, quiet_mode, set_quiet


class TestQuietState:
    """스레드 로컬 quiet 상태"""

    def test_default_not_quiet(self):
        assert is_quiet() is False

    def test_thread_local_isolation(self):
        """스레드 간 quiet 상태 격리"""
        results = {}

        def worker():
            set_quiet(True)
            results["thread"] = is_quiet()

        t = threading.Thread(target=worker)
        t.start()
        t.join()

        assert results["thread"] is True
        assert is_quiet() is False

    def test_inherit_restores_previous(self):
        """워커 재사용 시 원래 상태로 복원"""
        set_quiet(False)
        with inherit_quiet_state(True):
            assert is_quiet() is True
        assert is_quiet() is False


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestQuietMode:
    """quiet_mode 로그 억제"""

    def test_suppresses_below_error(self):
        """quiet 블록 안에서는 ERROR 미만 레코드 억제"""
        root = logging.getLogger()
        handler = _ListHandler()
        root.addHandler(handler)
        logger = logging.getLogger("azrecon.test.quiet")
        logger.setLevel(logging.DEBUG)
        try:
            with quiet_mode():
                assert is_quiet() is True
                logger.warning("hidden")
                logger.error("shown")
            logger.warning("after")
        finally:
            root.removeHandler(handler)

        messages = [r.getMessage() for r in handler.records]
        assert messages == ["shown", "after"]
        assert is_quiet() is False

    def test_nested_quiet_mode(self):
        with quiet_mode():
            with quiet_mode():
                assert is_quiet() is True
            assert is_quiet() is True
        assert is_quiet() is False
