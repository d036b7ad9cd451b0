"""
tests/parallel/test_parallel_executor.py - RequestExecutor 단일/페이지네이션 fetch 테스트
"""

import logging
import time
from unittest.mock import MagicMock

import pytest
import requests

from azrecon.cache.keys import descriptor_key
from azrecon.cache.store import CacheStore
from azrecon.exceptions import (
    AuthError,
    FetchCancelledError,
    MaxRetriesExceededError,
    RequestError,
    SerializationError,
)
from azrecon.parallel.executor import RequestExecutor, extract_page
from azrecon.parallel.retry import RetryConfig
from azrecon.parallel.transport import HttpResponse
from azrecon.parallel.types import CacheOptions, CancelToken, RequestDescriptor


def ok(body, headers=None):
    return HttpResponse(200, headers or {}, body=body)


def status(code, headers=None, body=None):
    return HttpResponse(code, headers or {}, body=body)


class TestFetchSingle:
    """단일 요청"""

    def test_success_is_cached(self, executor, transport, store):
        """성공 결과는 캐시되고 두 번째 fetch는 wire 호출 없음"""
        transport.send.return_value = ok({"id": "sub-1"})
        d = RequestDescriptor("subscriptions/sub-1", params={"api-version": "2022-12-01"})

        assert executor.fetch(d) == {"id": "sub-1"}
        assert executor.fetch(d) == {"id": "sub-1"}

        assert transport.send.call_count == 1
        assert store.get("arm", descriptor_key(d)) == {"id": "sub-1"}
        assert executor.counters.cache_hits == 1

    def test_request_shape(self, executor, transport):
        """URL, 헤더, 파라미터, 타임아웃 전달"""
        transport.send.return_value = ok({})
        executor.fetch(RequestDescriptor("v1.0/me", namespace="graph", params={"$select": "id"}))

        args, kwargs = transport.send.call_args
        assert args == ("GET", "https://graph.test/v1.0/me")
        assert kwargs["headers"]["Authorization"] == "Bearer token-graph"
        assert kwargs["headers"]["User-Agent"].startswith("azrecon/")
        assert kwargs["params"] == {"$select": "id"}
        assert kwargs["timeout"] == (10.0, 30.0)

    def test_post_body_sent_as_json(self, executor, transport):
        transport.send.return_value = ok({"keys": []})
        executor.fetch(RequestDescriptor("x/listKeys", method="POST", body={"expand": "kerb"}))

        _, kwargs = transport.send.call_args
        assert kwargs["json_body"] == {"expand": "kerb"}
        assert kwargs["headers"]["Content-Type"] == "application/json"

    def test_skip_cache_refreshes_entry(self, executor, transport, store):
        """skip_cache는 조회를 건너뛰고 엔트리를 갱신"""
        d = RequestDescriptor("things")
        transport.send.side_effect = [ok({"v": 1}), ok({"v": 2})]

        assert executor.fetch(d) == {"v": 1}
        assert executor.fetch(d, CacheOptions(skip_cache=True)) == {"v": 2}
        assert executor.fetch(d) == {"v": 2}
        assert transport.send.call_count == 2

    def test_cache_options_applied(self, executor, transport, store):
        """TTL/압축 옵션이 엔트리에 반영"""
        transport.send.return_value = ok({"big": "x" * 1000})
        executor.fetch(RequestDescriptor("big"), CacheOptions(expiration_minutes=5, compress=True))

        info = store.snapshot("arm")[0]
        assert info.ttl_minutes == 5
        assert info.compressed is True

    def test_expired_cache_refetches(self, executor, transport, clock):
        transport.send.side_effect = [ok(1), ok(2)]
        d = RequestDescriptor("x")

        assert executor.fetch(d, CacheOptions(expiration_minutes=1)) == 1
        clock.advance(minutes=2)
        assert executor.fetch(d, CacheOptions(expiration_minutes=1)) == 2


class TestRetry:
    """재시도 / 백오프"""

    def test_throttled_twice_then_success(self, executor, transport, sleeps):
        """429 두 번 후 성공하면 결과 반환, 대기 5 + 10초"""
        transport.send.side_effect = [status(429), status(429), ok({"done": True})]

        assert executor.fetch(RequestDescriptor("x")) == {"done": True}
        assert transport.send.call_count == 3
        assert sleeps == [5.0, 10.0]
        assert sum(sleeps) >= 5.0 * 1 + 5.0 * 2

    def test_elapsed_time_respects_backoff(self, ctx, transport):
        """실제 sleep에서 경과 시간 >= base_delay*1 + base_delay*2"""
        transport.send.side_effect = [status(429), status(429), ok("ok")]
        executor = RequestExecutor(ctx, CacheStore(), transport=transport, retry_config=RetryConfig(base_delay=0.05))

        start = time.monotonic()
        assert executor.fetch(RequestDescriptor("x")) == "ok"
        assert time.monotonic() - start >= 0.05 + 0.10

    def test_retry_after_hint_used(self, executor, transport, sleeps):
        transport.send.side_effect = [status(429, {"Retry-After": "2"}), ok(1)]
        executor.fetch(RequestDescriptor("x"))
        assert sleeps == [2.0]

    def test_transient_network_error_retried(self, executor, transport, sleeps):
        transport.send.side_effect = [requests.ConnectionError("reset"), status(503), ok("fine")]

        assert executor.fetch(RequestDescriptor("x")) == "fine"
        assert sleeps == [5.0, 10.0]
        assert executor.counters.retries == 2

    def test_retries_exhausted(self, executor, transport, sleeps):
        """재시도 소진 시 MaxRetriesExceededError"""
        transport.send.return_value = status(429)

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            executor.fetch(RequestDescriptor("x"))

        assert exc_info.value.attempts == 4
        assert transport.send.call_count == 4
        assert sleeps == [5.0, 10.0, 15.0]

    @pytest.mark.parametrize("code", [401, 403])
    def test_auth_fails_fast(self, executor, transport, sleeps, code):
        """인증 실패는 재시도 없이 즉시 실패"""
        transport.send.return_value = status(code)

        with pytest.raises(AuthError):
            executor.fetch(RequestDescriptor("x"))

        assert transport.send.call_count == 1
        assert sleeps == []

    def test_bad_request_not_retried(self, executor, transport):
        transport.send.return_value = status(400, body={"error": {"code": "InvalidApiVersion", "message": "bad"}})

        with pytest.raises(RequestError, match="InvalidApiVersion"):
            executor.fetch(RequestDescriptor("x"))
        assert transport.send.call_count == 1

    def test_failures_not_cached(self, executor, transport, store):
        transport.send.return_value = status(400)
        with pytest.raises(RequestError):
            executor.fetch(RequestDescriptor("x"))
        assert store.size("arm") == 0


class TestNotFound:
    """404 처리"""

    def test_single_404_returns_none(self, executor, transport, store):
        transport.send.return_value = status(404)

        assert executor.fetch(RequestDescriptor("vaults/missing")) is None
        assert store.size("arm") == 0
        assert executor.counters.not_found == 1

    def test_paginated_404_returns_empty_list(self, executor, transport):
        transport.send.return_value = status(404)
        assert executor.fetch(RequestDescriptor("missing", paginate=True)) == []


class TestPagination:
    """페이지네이션"""

    @staticmethod
    def _pages(count, per_page, next_field="nextLink"):
        pages = []
        for p in range(count):
            body = {"value": [{"id": f"item-{p * per_page + i}"} for i in range(per_page)]}
            if p < count - 1:
                body[next_field] = f"https://arm.test/things?$skiptoken={p + 1}"
            pages.append(ok(body))
        return pages

    def test_scenario_c_three_pages(self, executor, transport, store):
        """10개씩 3페이지면 중복 없는 30개가 캐시됨"""
        transport.send.side_effect = self._pages(3, 10)
        d = RequestDescriptor("things", params={"api-version": "1"}, paginate=True)

        items = executor.fetch(d)

        assert len(items) == 30
        assert len({i["id"] for i in items}) == 30
        assert store.get("arm", descriptor_key(d)) == items
        assert store.size("arm") == 1

    def test_cursor_urls_followed(self, executor, transport):
        """다음 페이지는 커서 URL을 그대로 사용 (파라미터 재전송 없음)"""
        transport.send.side_effect = self._pages(2, 1, next_field="@odata.nextLink")
        executor.fetch(RequestDescriptor("v1.0/users", namespace="graph", params={"$top": 1}, paginate=True))

        first, second = transport.send.call_args_list
        assert first.args[1] == "https://graph.test/v1.0/users"
        assert first.kwargs["params"] == {"$top": 1}
        assert second.args[1] == "https://arm.test/things?$skiptoken=1"
        assert second.kwargs["params"] is None

    def test_throttle_mid_pagination_resumes_same_cursor(self, executor, transport, sleeps):
        """중간 페이지 쓰로틀링은 같은 커서로 재시도"""
        pages = self._pages(3, 2)
        transport.send.side_effect = [pages[0], status(429, {"Retry-After": "1"}), pages[1], pages[2]]

        items = executor.fetch(RequestDescriptor("things", paginate=True))

        urls = [c.args[1] for c in transport.send.call_args_list]
        assert urls[1] == urls[2]
        assert urls.count("https://arm.test/things") == 1
        assert len(items) == 6
        assert sleeps == [1.0]

    def test_retry_budget_shared_across_pages(self, executor, transport, sleeps, store):
        """페이지마다 쓰로틀링되어도 재시도 예산은 fetch 전체에 한 번만 주어짐"""
        pages = self._pages(3, 2)
        throttled = status(429)
        transport.send.side_effect = [throttled, throttled, pages[0], throttled, throttled, pages[1], pages[2]]

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            executor.fetch(RequestDescriptor("things", paginate=True))

        assert transport.send.call_count == 5
        assert sleeps == [5.0, 10.0, 15.0]
        assert exc_info.value.attempts == 4
        assert store.size("arm") == 0

    def test_single_page_failures_spread_over_pages(self, executor, transport, sleeps):
        """페이지별 실패가 예산 안이면 성공"""
        pages = self._pages(3, 1)
        throttled = status(503)
        transport.send.side_effect = [throttled, pages[0], throttled, pages[1], throttled, pages[2]]

        items = executor.fetch(RequestDescriptor("things", paginate=True))

        assert len(items) == 3
        assert sleeps == [5.0, 10.0, 15.0]
        assert executor.counters.retries == 3

    def test_duplicate_ids_removed(self, executor, transport):
        transport.send.side_effect = [
            ok({"value": [{"id": "a"}, {"id": "b"}], "nextLink": "https://arm.test/p2"}),
            ok({"value": [{"id": "b"}, {"id": "c"}]}),
        ]
        items = executor.fetch(RequestDescriptor("x", paginate=True))
        assert [i["id"] for i in items] == ["a", "b", "c"]

    def test_repeated_cursor_stops(self, executor, transport, caplog):
        """서버가 같은 커서를 반복하면 중단"""
        transport.send.side_effect = [
            ok({"value": [{"id": "a"}], "nextLink": "https://arm.test/p2"}),
            ok({"value": [{"id": "b"}], "nextLink": "https://arm.test/p2"}),
        ]
        with caplog.at_level(logging.WARNING, logger="azrecon"):
            items = executor.fetch(RequestDescriptor("x", paginate=True))

        assert len(items) == 2
        assert transport.send.call_count == 2
        assert "커서" in caplog.text

    def test_mid_pagination_404_returns_partial_uncached(self, executor, transport, store):
        transport.send.side_effect = [
            ok({"value": [{"id": "a"}], "nextLink": "https://arm.test/p2"}),
            status(404),
        ]
        d = RequestDescriptor("x", paginate=True)

        assert executor.fetch(d) == [{"id": "a"}]
        assert store.size("arm") == 0

    def test_cancel_between_pages(self, executor, transport):
        """페이지 사이에서 취소 확인"""
        token = CancelToken()

        def send(method, url, **kwargs):
            token.cancel()
            return ok({"value": [{"id": "a"}], "nextLink": "https://arm.test/p2"})

        transport.send.side_effect = send

        with pytest.raises(FetchCancelledError):
            executor.fetch(RequestDescriptor("x", paginate=True), cancel=token)
        assert transport.send.call_count == 1

    def test_deadline_exceeded_before_start(self, executor, transport):
        with pytest.raises(FetchCancelledError):
            executor.fetch(RequestDescriptor("x"), cancel=CancelToken(timeout=0))
        transport.send.assert_not_called()


class TestExtractPage:
    """extract_page 테스트"""

    def test_graph_page(self):
        assert extract_page({"value": [1], "@odata.nextLink": "n"}) == ([1], "n")

    def test_arm_page(self):
        assert extract_page({"value": [1, 2], "nextLink": None}) == ([1, 2], None)

    def test_plain_object(self):
        assert extract_page({"id": "x"}) == ([{"id": "x"}], None)

    def test_list_and_none(self):
        assert extract_page([1, 2]) == ([1, 2], None)
        assert extract_page(None) == ([], None)


class TestWriteThrough:
    """캐시 write-through 실패"""

    def test_unserializable_result_still_returned(self, executor, transport, store, caplog, monkeypatch):
        """직렬화 실패는 로그만 남고 fetch는 성공"""
        transport.send.return_value = ok({"value": 1})
        monkeypatch.setattr(store, "put", MagicMock(side_effect=SerializationError("boom")))

        with caplog.at_level(logging.WARNING, logger="azrecon"):
            assert executor.fetch(RequestDescriptor("x")) == {"value": 1}

        assert "캐시 저장 실패" in caplog.text
        assert executor.counters.write_failures == 1
