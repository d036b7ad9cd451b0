"""
azrecon/parallel - 캐시 연동 요청 실행 및 병렬 처리

구성:
    executor  - RequestExecutor (fetch, fetch_batch, fetch_many)
    retry     - RetryConfig, 응답/예외 분류
    transport - requests 기반 HTTP 전송기
    types     - RequestDescriptor, CacheOptions, CancelToken, 결과 타입
    quiet     - 병렬 실행 중 로그 억제

사용법:
    from azrecon.parallel import CacheOptions, RequestDescriptor, RequestExecutor

    executor = RequestExecutor(ctx)
    result = executor.fetch_many(descriptors, CacheOptions(compress=True), max_workers=20)
    if result.error_count:
        print(result.get_error_summary())

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

__all__ = [
    # Executor
    "RequestExecutor",
    "FetchCounters",
    "extract_page",
    # Retry
    "RetryConfig",
    "RetryState",
    "classify_status",
    "classify_exception",
    "categorize_error",
    # Transport
    "HttpResponse",
    "HttpTransport",
    "RequestsTransport",
    # Types
    "ErrorCategory",
    "RequestDescriptor",
    "CacheOptions",
    "CancelToken",
    "FetchFailure",
    "FetchOutcome",
    "BatchItemStatus",
    "BatchItemResult",
    "ParallelFetchResult",
    # Quiet
    "quiet_mode",
    "is_quiet",
    "set_quiet",
]

_LAZY_ATTRS = {
    "RequestExecutor": "executor",
    "FetchCounters": "executor",
    "extract_page": "executor",
    "RetryConfig": "retry",
    "RetryState": "retry",
    "classify_status": "retry",
    "classify_exception": "retry",
    "categorize_error": "retry",
    "HttpResponse": "transport",
    "HttpTransport": "transport",
    "RequestsTransport": "transport",
    "ErrorCategory": "types",
    "RequestDescriptor": "types",
    "CacheOptions": "types",
    "CancelToken": "types",
    "FetchFailure": "types",
    "FetchOutcome": "types",
    "BatchItemStatus": "types",
    "BatchItemResult": "types",
    "ParallelFetchResult": "types",
    "quiet_mode": "quiet",
    "is_quiet": "quiet",
    "set_quiet": "quiet",
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    module_name = _LAZY_ATTRS.get(name)
    if module_name is not None:
        import importlib

        module = importlib.import_module(f"{__name__}.{module_name}")
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
