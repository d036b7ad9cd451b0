"""
azrecon/cache - 인메모리 요청 캐시

구성:
    keys   - 파라미터 순서 무관 캐시 키 생성 (build_key, descriptor_key)
    codec  - msgpack 직렬화 + gzip 압축 (PayloadCodec)
    store  - 네임스페이스 TTL + LRU 저장소 (CacheStore, CacheStats)
    types  - CacheEntry, CacheEntryInfo

사용법:
    from azrecon.cache import CacheStore, build_key

    store = CacheStore()
    key = build_key("arm:/subscriptions", {"api-version": "2022-12-01"})
    store.put("arm", key, subscriptions, ttl_minutes=30)

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

__all__ = [
    "CacheStore",
    "CacheStats",
    "MISSING",
    "CacheEntry",
    "CacheEntryInfo",
    "PayloadCodec",
    "build_key",
    "descriptor_key",
]

_LAZY_ATTRS = {
    "CacheStore": "store",
    "CacheStats": "store",
    "MISSING": "store",
    "CacheEntry": "types",
    "CacheEntryInfo": "types",
    "PayloadCodec": "codec",
    "build_key": "keys",
    "descriptor_key": "keys",
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    module_name = _LAZY_ATTRS.get(name)
    if module_name is not None:
        import importlib

        module = importlib.import_module(f"{__name__}.{module_name}")
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
