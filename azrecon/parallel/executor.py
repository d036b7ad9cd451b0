"""
azrecon/parallel/executor.py - 캐시 연동 요청 실행기

논리적 요청 단위로 캐시를 조회하고, 미스 시 단일/페이지네이션/배치 호출을
재시도 정책과 함께 수행한 뒤 결과를 캐시에 기록(write-through)합니다.

fetch 상태 흐름:
    Start -> CacheCheck -> (Hit) Done
                        -> (Miss) Dispatch
    Dispatch -> Success    -> StoreAndDone
             -> Throttled  -> Backoff -> Dispatch
             -> Transient  -> Backoff -> Dispatch
             -> AuthFailure -> FailFast (AuthError)
             -> NotFound   -> EmptyDone (None / [])
             -> 재시도 소진 -> Fail (MaxRetriesExceededError)

주요 구성 요소:
- RequestExecutor.fetch: 단일 또는 페이지네이션 요청
- RequestExecutor.fetch_batch: 최대 20개 하위 요청을 묶는 배치 요청
- RequestExecutor.fetch_many: ThreadPoolExecutor 기반 병렬 fetch

Example:
    ctx = ReconSettings.from_env().to_context()
    executor = RequestExecutor(ctx, CacheStore())

    subs = executor.fetch(
        RequestDescriptor("subscriptions", params={"api-version": "2022-12-01"}, paginate=True),
        CacheOptions(expiration_minutes=60, compress=True),
    )
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Any, Protocol, TypeVar
from urllib.parse import urlencode

import requests

from azrecon.cache.keys import descriptor_key
from azrecon.cache.store import MISSING, CacheStore
from azrecon.exceptions import (
    AuthError,
    AzReconError,
    FetchCancelledError,
    FetchError,
    MaxRetriesExceededError,
    NotFoundError,
    RequestError,
    is_retryable,
)

from .quiet import inherit_quiet_state, is_quiet
from .retry import RetryConfig, RetryState, categorize_error, classify_exception, classify_status, get_error_code
from .transport import HttpResponse, HttpTransport, RequestsTransport
from .types import (
    BatchItemResult,
    BatchItemStatus,
    CacheOptions,
    CancelToken,
    FetchFailure,
    FetchOutcome,
    ParallelFetchResult,
    RequestDescriptor,
)

if TYPE_CHECKING:
    from azrecon.config import ReconContext

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 20  # Graph $batch 하위 요청 최대 개수
DEFAULT_BATCH_PATH = "v1.0/$batch"
BATCH_NAMESPACES = frozenset({"graph"})  # $batch 엔드포인트가 있는 네임스페이스
MAX_WORKERS_LIMIT = 100

# 페이지 응답의 연속 커서 필드 (Graph, ARM 순)
NEXT_LINK_FIELDS = ("@odata.nextLink", "nextLink")


class ProgressTracker(Protocol):
    """fetch_many 진행 상황 추적기 프로토콜"""

    def set_total(self, total: int) -> None: ...

    def on_complete(self, success: bool) -> None: ...


class FetchCounters:
    """실행기 누적 카운터 (스레드 안전)

    Attributes:
        wire_calls: 실제 HTTP 호출 수
        retries: 재시도 수
        cache_hits: 캐시 히트 수
        cache_misses: 캐시 미스 수
        not_found: 404로 빈 결과를 반환한 fetch 수
        write_failures: 캐시 write-through 실패 수
    """

    _FIELDS = ("wire_calls", "retries", "cache_hits", "cache_misses", "not_found", "write_failures")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values = dict.fromkeys(self._FIELDS, 0)

    def increment(self, name: str, count: int = 1) -> None:
        with self._lock:
            self._values[name] += count

    def __getattr__(self, name: str) -> int:
        if name in FetchCounters._FIELDS:
            with self._lock:
                return self._values[name]
        raise AttributeError(name)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._values)


def _chunks(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """리스트를 size 단위로 분할"""
    for i in range(0, len(items), size):
        yield list(items[i : i + size])


def _clear_exception_chain(e: BaseException) -> None:
    """워커 스레드 traceback 참조 해제 (결과 객체가 오래 보관되므로)"""
    e.__traceback__ = None
    if e.__context__ is not None:
        e.__context__.__traceback__ = None
    if e.__cause__ is not None:
        e.__cause__.__traceback__ = None


def extract_page(body: Any) -> tuple[list[Any], str | None]:
    """페이지 응답에서 항목 목록과 다음 커서 추출

    Args:
        body: 파싱된 응답 본문

    Returns:
        (항목 리스트, 다음 페이지 URL 또는 None)
    """
    if body is None:
        return [], None
    if isinstance(body, list):
        return body, None
    if isinstance(body, Mapping):
        next_link = next((body[f] for f in NEXT_LINK_FIELDS if body.get(f)), None)
        if "value" in body:
            value = body.get("value")
            if value is None:
                return [], next_link
            return (value if isinstance(value, list) else [value]), next_link
        return [dict(body)], next_link
    return [body], None


class RequestExecutor:
    """캐시 연동 요청 실행기

    Args:
        ctx: 실행 컨텍스트 (토큰, 엔드포인트, 타임아웃)
        cache: 캐시 저장소 (None이면 전용 저장소 생성)
        transport: HTTP 전송기 (None이면 RequestsTransport)
        retry_config: 재시도 설정 (None이면 기본값: 3회, 5초 기본 대기)
        batch_size: 배치 wire 호출당 최대 하위 요청 수 (1~20)
        batch_path: 배치 엔드포인트 경로 (네임스페이스 기본 URL 기준)
        sleep: 백오프 대기 함수 (테스트용 주입, CancelToken 사용 시에는 토큰이 대기)
    """

    def __init__(
        self,
        ctx: ReconContext,
        cache: CacheStore | None = None,
        transport: HttpTransport | None = None,
        retry_config: RetryConfig | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_path: str = DEFAULT_BATCH_PATH,
        sleep: Callable[[float], None] | None = None,
    ):
        if not 1 <= batch_size <= DEFAULT_BATCH_SIZE:
            raise ValueError(f"batch_size must be 1..{DEFAULT_BATCH_SIZE}, got {batch_size}")

        self.ctx = ctx
        self.cache = cache if cache is not None else CacheStore()
        self.transport: HttpTransport = transport or RequestsTransport(pool_size=ctx.max_workers)
        self.retry_config = retry_config or RetryConfig()
        self.batch_size = batch_size
        self.batch_path = batch_path.lstrip("/")
        self.counters = FetchCounters()
        self._sleep = sleep or time.sleep

    # =========================================================================
    # 단일 / 페이지네이션
    # =========================================================================

    def fetch(
        self,
        descriptor: RequestDescriptor,
        options: CacheOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> Any:
        """논리적 요청 1건 조회

        Args:
            descriptor: 요청 명세 (paginate=True면 모든 페이지를 누적)
            options: 캐시 옵션 (None이면 기본값)
            cancel: 취소 토큰 (페이지 사이, 백오프 대기 중 확인)

        Returns:
            응답 본문 (단일) 또는 누적 항목 리스트 (페이지네이션).
            404면 None 또는 빈 리스트.

        Raises:
            AuthError: 401/403 (재시도 없음)
            MaxRetriesExceededError: 재시도 소진
            RequestError: 재시도 불가능한 기타 요청 오류
            FetchCancelledError: 취소 또는 데드라인 초과
        """
        data, _ = self._fetch(descriptor, options or CacheOptions(), cancel)
        return data

    def _fetch(
        self,
        descriptor: RequestDescriptor,
        options: CacheOptions,
        cancel: CancelToken | None,
        raise_not_found: bool = False,
    ) -> tuple[Any, bool]:
        """fetch 본체

        Args:
            raise_not_found: True면 404를 빈 결과로 바꾸지 않고 NotFoundError로 전파

        Returns:
            (데이터, 캐시 히트 여부)
        """
        key = descriptor_key(descriptor)

        if not options.skip_cache:
            cached = self.cache.get(descriptor.namespace, key, MISSING)
            if cached is not MISSING:
                self.counters.increment("cache_hits")
                logger.debug(f"캐시 히트: {descriptor.label}")
                return cached, True
            self.counters.increment("cache_misses")

        try:
            if descriptor.paginate:
                data, complete = self._fetch_paginated(descriptor, cancel)
            else:
                data, complete = self._fetch_single(descriptor, cancel), True
        except NotFoundError:
            self.counters.increment("not_found")
            logger.debug(f"리소스 없음 (404): {descriptor.label}")
            if raise_not_found:
                raise
            return ([] if descriptor.paginate else None), False

        if complete:
            self._write_through(descriptor.namespace, key, data, options)
        return data, False

    def _fetch_single(self, descriptor: RequestDescriptor, cancel: CancelToken | None) -> Any:
        url = descriptor.pagination_cursor or self.ctx.url_for(descriptor)
        params = None if descriptor.pagination_cursor else descriptor.params
        response = self._send(
            descriptor.method,
            url,
            descriptor.namespace,
            params=params,
            body=descriptor.body,
            extra_headers=descriptor.headers,
            cancel=cancel,
            state=self._new_retry_state(),
        )
        return response.body

    def _fetch_paginated(
        self,
        descriptor: RequestDescriptor,
        cancel: CancelToken | None,
    ) -> tuple[list[Any], bool]:
        """연속 커서를 따라 전체 페이지 누적

        쓰로틀링은 _send 안에서 같은 커서로 재시도되므로 처음부터 다시 시작하지 않습니다.
        모든 페이지가 하나의 RetryState를 공유하므로 재시도 예산은 fetch 전체에 적용됩니다.

        Returns:
            (누적 항목, 완료 여부). 중간 페이지 404면 완료되지 않은 것으로 보고 캐시하지 않음
        """
        items: list[Any] = []
        seen_ids: set[str] = set()
        visited: set[str] = set()

        url: str | None = descriptor.pagination_cursor or self.ctx.url_for(descriptor)
        params: Mapping[str, Any] | None = None if descriptor.pagination_cursor else descriptor.params
        body = descriptor.body
        pages = 0
        state = self._new_retry_state()

        while url:
            if cancel is not None:
                cancel.check(url)
            try:
                response = self._send(
                    descriptor.method,
                    url,
                    descriptor.namespace,
                    params=params,
                    body=body,
                    extra_headers=descriptor.headers,
                    cancel=cancel,
                    state=state,
                )
            except NotFoundError:
                if pages == 0:
                    raise
                logger.warning(f"페이지네이션 중 커서 만료 (404), {len(items)}개까지만 반환: {descriptor.label}")
                return items, False

            pages += 1
            visited.add(url)
            page_items, next_link = extract_page(response.body)

            for item in page_items:
                item_id = item.get("id") if isinstance(item, Mapping) else None
                if isinstance(item_id, str):
                    if item_id in seen_ids:
                        continue
                    seen_ids.add(item_id)
                items.append(item)

            if next_link and next_link in visited:
                logger.warning(f"서버가 동일한 커서를 반복 반환하여 페이지네이션 중단: {descriptor.label}")
                break

            url = next_link
            params = None
            body = None

        logger.debug(f"페이지네이션 완료: {descriptor.label} ({pages}페이지, {len(items)}개)")
        return items, True

    # =========================================================================
    # 배치
    # =========================================================================

    def fetch_batch(
        self,
        descriptors: Sequence[RequestDescriptor],
        options: CacheOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> dict[str, BatchItemResult]:
        """하위 요청들을 배치 wire 호출로 묶어 조회

        캐시된 하위 요청은 wire 호출에서 제외되고, 나머지는 batch_size 단위로 묶입니다.
        batchable=False이거나 $batch 엔드포인트가 없는 네임스페이스(arm)의 요청은
        배치에 넣지 않고 개별 fetch로 처리하며, 결과는 같은 형태로 기록됩니다.
        한 하위 요청의 실패(404 등)는 해당 하위 요청에만 기록되며 형제 요청은 계속 진행됩니다.
        429/5xx 하위 응답은 Retry-After 대기 후 다음 배치에서 재시도됩니다.

        Args:
            descriptors: 하위 요청 명세 (correlation_id 없으면 "1", "2", ... 자동 부여)
            options: 캐시 옵션
            cancel: 취소 토큰

        Returns:
            {correlation_id: BatchItemResult} (입력 순서 유지)

        Raises:
            ValueError: correlation_id 중복
            AuthError: 배치 wire 호출 자체가 401/403인 경우
            FetchCancelledError: 취소 또는 데드라인 초과
        """
        options = options or CacheOptions()
        items = self._assign_correlation_ids(descriptors)
        results: dict[str, BatchItemResult] = {}
        pending: list[RequestDescriptor] = []
        state = self._new_retry_state()

        for d in items:
            cid = d.correlation_id
            assert cid is not None
            if not self._is_batchable(d):
                results[cid] = self._fetch_unbatched(d, options, cancel)
                continue
            if not options.skip_cache:
                cached = self.cache.get(d.namespace, descriptor_key(d, batch_mode=True), MISSING)
                if cached is not MISSING:
                    self.counters.increment("cache_hits")
                    results[cid] = BatchItemResult(cid, d, BatchItemStatus.OK, data=cached, from_cache=True)
                    continue
                self.counters.increment("cache_misses")
            pending.append(d)

        if items:
            logger.debug(f"배치 요청: 총 {len(items)}개, 배치 대상 미스 {len(pending)}개")

        round_no = 0
        while pending:
            round_no += 1
            retry_queue: list[RequestDescriptor] = []
            retry_after: float | None = None

            for namespace, group in self._group_by_namespace(pending):
                for chunk in _chunks(group, self.batch_size):
                    if cancel is not None:
                        cancel.check(self.batch_path)
                    try:
                        responses = self._send_batch(namespace, chunk, cancel, state)
                    except (AuthError, FetchCancelledError):
                        raise
                    except FetchError as e:
                        logger.warning(f"배치 호출 실패, 하위 요청 {len(chunk)}개에 기록: {e}")
                        for d in chunk:
                            cid = d.correlation_id
                            assert cid is not None
                            results[cid] = BatchItemResult(
                                cid, d, BatchItemStatus.ERROR, status_code=e.status_code, error=e
                            )
                        continue

                    for d in chunk:
                        cid = d.correlation_id
                        assert cid is not None
                        sub = responses.get(cid)
                        if sub is None:
                            results[cid] = BatchItemResult(
                                cid,
                                d,
                                BatchItemStatus.ERROR,
                                error=RequestError("배치 응답에 하위 요청 결과가 없습니다", endpoint=d.endpoint),
                            )
                            continue

                        outcome = self._handle_sub_response(d, sub, options, round_no)
                        if isinstance(outcome, FetchError):
                            retry_queue.append(d)
                            hint = getattr(outcome, "retry_after", None)
                            if hint is not None:
                                retry_after = max(retry_after or 0.0, hint)
                        else:
                            results[cid] = outcome

            pending = retry_queue
            if pending:
                delay = self.retry_config.get_delay(round_no, retry_after)
                self.counters.increment("retries", len(pending))
                logger.debug(f"배치 하위 요청 {len(pending)}개 재시도 예정 ({round_no}회차), {delay:.2f}초 대기")
                self._wait(delay, cancel, self.batch_path)

        ordered: dict[str, BatchItemResult] = {}
        for d in items:
            assert d.correlation_id is not None
            ordered[d.correlation_id] = results[d.correlation_id]
        return ordered

    def _handle_sub_response(
        self,
        descriptor: RequestDescriptor,
        sub: Mapping[str, Any],
        options: CacheOptions,
        round_no: int,
    ) -> BatchItemResult | FetchError:
        """하위 응답 처리

        Returns:
            확정된 결과, 또는 다음 배치에서 재시도할 경우 분류된 예외
        """
        cid = descriptor.correlation_id
        assert cid is not None
        body = sub.get("body")

        try:
            status = int(sub.get("status", 0))
        except (TypeError, ValueError):
            status = 0
        if not 100 <= status < 600:
            error: FetchError | None = RequestError(f"잘못된 하위 응답 상태: {sub.get('status')!r}", endpoint=descriptor.endpoint)
        else:
            error = classify_status(status, sub.get("headers") or {}, descriptor.endpoint, body)

        if error is None:
            self._write_through(descriptor.namespace, descriptor_key(descriptor, batch_mode=True), body, options)
            return BatchItemResult(cid, descriptor, BatchItemStatus.OK, status_code=status, data=body)

        if isinstance(error, NotFoundError):
            self.counters.increment("not_found")
            return BatchItemResult(cid, descriptor, BatchItemStatus.NOT_FOUND, status_code=status)

        if is_retryable(error):
            if round_no <= self.retry_config.max_retries:
                return error
            error = MaxRetriesExceededError(descriptor.endpoint, round_no, error)

        return BatchItemResult(cid, descriptor, BatchItemStatus.ERROR, status_code=status, error=error)

    @staticmethod
    def _is_batchable(descriptor: RequestDescriptor) -> bool:
        return descriptor.batchable and descriptor.namespace in BATCH_NAMESPACES and not descriptor.paginate

    def _fetch_unbatched(
        self,
        descriptor: RequestDescriptor,
        options: CacheOptions,
        cancel: CancelToken | None,
    ) -> BatchItemResult:
        """배치로 보낼 수 없는 하위 요청을 개별 fetch로 처리

        401/403을 포함한 요청 실패는 배치 하위 응답과 마찬가지로 해당 요청에만 기록합니다.
        """
        cid = descriptor.correlation_id
        assert cid is not None
        logger.debug(f"배치 불가 요청 개별 처리: {descriptor.label}")
        try:
            data, from_cache = self._fetch(descriptor, options, cancel, raise_not_found=True)
        except FetchCancelledError:
            raise
        except NotFoundError as e:
            return BatchItemResult(cid, descriptor, BatchItemStatus.NOT_FOUND, status_code=e.status_code)
        except FetchError as e:
            return BatchItemResult(cid, descriptor, BatchItemStatus.ERROR, status_code=e.status_code, error=e)
        return BatchItemResult(cid, descriptor, BatchItemStatus.OK, data=data, from_cache=from_cache)

    def _send_batch(
        self,
        namespace: str,
        chunk: list[RequestDescriptor],
        cancel: CancelToken | None,
        state: RetryState,
    ) -> dict[str, Mapping[str, Any]]:
        """배치 wire 호출 1회 (correlation id로 역다중화)"""
        url = f"{self.ctx.base_url(namespace)}/{self.batch_path}"
        payload = {"requests": [self._batch_request_entry(d) for d in chunk]}
        response = self._send("POST", url, namespace, body=payload, cancel=cancel, state=state)

        entries = response.body.get("responses", []) if isinstance(response.body, Mapping) else []
        return {str(e.get("id")): e for e in entries if isinstance(e, Mapping)}

    def _batch_request_entry(self, descriptor: RequestDescriptor) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "id": descriptor.correlation_id,
            "method": descriptor.method,
            "url": self._batch_relative_url(descriptor),
        }
        headers = dict(descriptor.headers)
        if descriptor.body is not None:
            entry["body"] = descriptor.body
            headers.setdefault("Content-Type", "application/json")
        if headers:
            entry["headers"] = headers
        return entry

    def _batch_relative_url(self, descriptor: RequestDescriptor) -> str:
        """하위 요청 URL을 배치 버전 루트 기준 상대 경로로 변환 (예: v1.0/users -> /users)"""
        endpoint = descriptor.endpoint
        if endpoint.startswith(("http://", "https://")):
            base = self.ctx.base_url(descriptor.namespace)
            if endpoint.startswith(base):
                endpoint = endpoint[len(base) :]
        endpoint = endpoint.lstrip("/")

        version = self.batch_path.split("/", 1)[0]
        if endpoint.startswith(version + "/"):
            endpoint = endpoint[len(version) + 1 :]

        url = "/" + endpoint
        if descriptor.params:
            query = urlencode(dict(descriptor.params), doseq=True, safe="$,'()")
            url = f"{url}{'&' if '?' in url else '?'}{query}"
        return url

    @staticmethod
    def _assign_correlation_ids(descriptors: Iterable[RequestDescriptor]) -> list[RequestDescriptor]:
        """correlation id 중복 검사 및 미지정 항목 자동 부여"""
        items = list(descriptors)
        used: set[str] = set()
        for d in items:
            if d.correlation_id is not None:
                if d.correlation_id in used:
                    raise ValueError(f"중복된 correlation id: {d.correlation_id}")
                used.add(d.correlation_id)

        assigned: list[RequestDescriptor] = []
        counter = 0
        for d in items:
            if d.correlation_id is None:
                counter += 1
                while str(counter) in used:
                    counter += 1
                d = d.with_correlation_id(str(counter))
                used.add(str(counter))
            assigned.append(d)
        return assigned

    @staticmethod
    def _group_by_namespace(items: list[RequestDescriptor]) -> list[tuple[str, list[RequestDescriptor]]]:
        groups: dict[str, list[RequestDescriptor]] = {}
        for d in items:
            groups.setdefault(d.namespace, []).append(d)
        return list(groups.items())

    # =========================================================================
    # 병렬 실행
    # =========================================================================

    def fetch_many(
        self,
        descriptors: Iterable[RequestDescriptor],
        options: CacheOptions | None = None,
        max_workers: int | None = None,
        cancel: CancelToken | None = None,
        progress_tracker: ProgressTracker | None = None,
    ) -> ParallelFetchResult:
        """여러 논리적 요청을 병렬로 fetch

        각 요청은 명시적 작업 인자로 워커에 전달되며, 워커의 백오프 대기는
        해당 워커만 막고 다른 fetch는 계속 진행됩니다.

        Args:
            descriptors: 요청 명세 목록
            options: 모든 요청에 적용할 캐시 옵션
            max_workers: 최대 동시 작업 수 (None이면 ctx.max_workers, 1~100)
            cancel: 모든 요청이 공유하는 취소 토큰
            progress_tracker: set_total / on_complete 를 가진 추적기

        Returns:
            ParallelFetchResult (입력 순서 유지)
        """
        items = list(descriptors)
        if not items:
            logger.warning("실행할 요청이 없습니다")
            return ParallelFetchResult()

        options = options or CacheOptions()
        workers = max(1, min(max_workers or self.ctx.max_workers, MAX_WORKERS_LIMIT))
        logger.info(f"병렬 fetch 시작: {len(items)}개 요청, max_workers={workers}")

        if progress_tracker:
            progress_tracker.set_total(len(items))

        outcomes: list[FetchOutcome | None] = [None] * len(items)
        parent_quiet = is_quiet()
        start_time = time.monotonic()

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="azrecon-fetch") as pool:
            futures = {
                pool.submit(self._fetch_task, descriptor, options, cancel, parent_quiet): index
                for index, descriptor in enumerate(items)
            }
            for future in as_completed(futures):
                outcome = future.result()
                outcomes[futures[future]] = outcome
                if progress_tracker:
                    progress_tracker.on_complete(outcome.success)

        result = ParallelFetchResult(results=tuple(o for o in outcomes if o is not None))
        total_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            f"병렬 fetch 완료: 성공 {result.success_count}, 실패 {result.error_count}, "
            f"캐시 히트 {result.cache_hit_count}, 총 {total_ms:.0f}ms"
        )
        return result

    def _fetch_task(
        self,
        descriptor: RequestDescriptor,
        options: CacheOptions,
        cancel: CancelToken | None,
        quiet: bool,
    ) -> FetchOutcome:
        """워커 스레드 작업 (예외를 결과로 변환)"""
        with inherit_quiet_state(quiet):
            start_time = time.monotonic()
            try:
                data, from_cache = self._fetch(descriptor, options, cancel)
            except Exception as e:
                _clear_exception_chain(e)
                logger.debug(f"fetch 실패 [{descriptor.label}]: {e}")
                return FetchOutcome(
                    descriptor=descriptor,
                    success=False,
                    error=FetchFailure(
                        identifier=descriptor.label,
                        category=categorize_error(e),
                        error_code=get_error_code(e),
                        message=str(e),
                        status_code=getattr(e, "status_code", None),
                        retries=max(getattr(e, "attempts", 1) - 1, 0),
                        original_exception=e,
                    ),
                    duration_ms=(time.monotonic() - start_time) * 1000,
                )

            return FetchOutcome(
                descriptor=descriptor,
                success=True,
                data=data,
                from_cache=from_cache,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

    # =========================================================================
    # wire 호출 / 재시도
    # =========================================================================

    def _send(
        self,
        method: str,
        url: str,
        namespace: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        extra_headers: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
        state: RetryState | None = None,
    ) -> HttpResponse:
        """재시도 정책을 적용한 wire 호출 1건

        state를 넘기면 같은 논리적 fetch의 이전 호출과 재시도 예산을 공유합니다.

        Raises:
            AuthError, NotFoundError, RequestError: 재시도 불가능한 실패
            MaxRetriesExceededError: 쓰로틀링/일시적 오류가 재시도 예산을 초과
            FetchCancelledError: 취소 또는 데드라인 초과
        """
        headers = self.ctx.headers_for(namespace)
        if extra_headers:
            headers.update(extra_headers)
        if body is not None:
            headers.setdefault("Content-Type", "application/json")

        if state is None:
            state = self._new_retry_state()

        while True:
            if cancel is not None:
                cancel.check(url)

            state.attempt += 1
            self.counters.increment("wire_calls")
            try:
                response = self.transport.send(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json_body=body,
                    timeout=self.ctx.timeout,
                )
            except (requests.RequestException, OSError) as e:
                error = classify_exception(e, url)
            else:
                classified = classify_status(response.status_code, response.headers, url, response.body)
                if classified is None:
                    return response
                error = classified

            state.record_failure(error)
            if not is_retryable(error):
                raise error
            if state.exhausted:
                raise MaxRetriesExceededError(url, state.failures, error) from error

            delay = self.retry_config.get_delay(state.failures, getattr(error, "retry_after", None))
            self.counters.increment("retries")
            logger.debug(f"[{method} {url}] 실패 {state.failures}/{state.max_attempts}회 ({error.message}), {delay:.2f}초 후 재시도...")
            self._wait(delay, cancel, url)

    def _new_retry_state(self) -> RetryState:
        return RetryState(max_attempts=self.retry_config.max_attempts, base_delay=self.retry_config.base_delay)

    def _wait(self, delay: float, cancel: CancelToken | None, endpoint: str) -> None:
        """백오프 대기 (이 워커만 막음)"""
        if cancel is not None:
            cancel.wait(delay, endpoint)
        elif delay > 0:
            self._sleep(delay)

    def _write_through(self, namespace: str, key: str, data: Any, options: CacheOptions) -> None:
        """성공 결과 캐시 기록 (실패는 로그만 남기고 무시)"""
        try:
            self.cache.put(
                namespace,
                key,
                data,
                ttl_minutes=options.expiration_minutes,
                max_entries=options.max_cache_size,
                compress=options.compress,
            )
        except (AzReconError, ValueError, TypeError) as e:
            self.counters.increment("write_failures")
            logger.warning(f"캐시 저장 실패 (무시): {namespace}/{key} - {e}")
