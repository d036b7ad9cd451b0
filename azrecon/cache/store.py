"""
azrecon/cache/store.py - 네임스페이스 기반 인메모리 캐시 저장소

API 패밀리(arm, graph 등)별로 독립된 키 공간, 크기 제한, eviction을 가지는
TTL + LRU 캐시입니다. 단일 프로세스, 인메모리, best-effort 캐시이며
디스크 영속화나 프로세스 간 공유는 하지 않습니다.

동작 규칙:
    - get: 없거나 만료된 키는 None(또는 default) 반환, 만료 엔트리는 즉시 제거
    - put: 직렬화(선택적 압축) 후 교체(last write wins), 이후 max_entries 초과분 eviction
    - eviction 순서: 만료 엔트리 우선 → last_accessed_at 오래된 순 → created_at → 삽입/조회 순서
    - snapshot: 메타데이터만 복사, last_accessed_at 변경 없음

Thread-safety:
    - 네임스페이스 맵은 저장소 Lock으로 보호
    - 네임스페이스별 RLock으로 get/put/eviction 직렬화
    - 통계 카운터는 CacheStats 내부 Lock으로 증가

Example:
    store = CacheStore()
    store.put("graph", "users?$top=10", users, ttl_minutes=30, max_entries=100, compress=True)
    users = store.get("graph", "users?$top=10")
"""

from __future__ import annotations

import fnmatch
import heapq
import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from azrecon.exceptions import SerializationError

from .codec import PayloadCodec
from .types import CacheEntry, CacheEntryInfo

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 30
DEFAULT_MAX_ENTRIES = 100

# 캐시 미스 구분용 센티널 (None 값도 캐시할 수 있도록)
MISSING: Any = object()


# =============================================================================
# 캐시 통계
# =============================================================================


@dataclass
class CacheStats:
    """캐시 통계 (스레드 안전)

    Attributes:
        hits: 캐시 히트 횟수
        misses: 캐시 미스 횟수 (만료 포함)
        sets: 캐시 저장 횟수
        evictions: LRU eviction 횟수
        expirations: 조회 시 만료로 제거된 횟수
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        """캐시 히트율 (0.0 ~ 1.0)"""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def add_hit(self, count: int = 1) -> None:
        with self._lock:
            self.hits += count

    def add_miss(self, count: int = 1) -> None:
        with self._lock:
            self.misses += count

    def add_set(self, count: int = 1) -> None:
        with self._lock:
            self.sets += count

    def add_eviction(self, count: int = 1) -> None:
        with self._lock:
            self.evictions += count

    def add_expiration(self, count: int = 1) -> None:
        with self._lock:
            self.expirations += count

    def merge(self, other: CacheStats) -> None:
        """다른 통계를 합산"""
        with self._lock:
            self.hits += other.hits
            self.misses += other.misses
            self.sets += other.sets
            self.evictions += other.evictions
            self.expirations += other.expirations

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": round(self.hit_rate, 4),
        }

    def summary(self) -> str:
        """통계 요약 문자열"""
        return (
            f"hits={self.hits}, misses={self.misses}, hit_rate={self.hit_rate:.1%}, "
            f"evictions={self.evictions}, expirations={self.expirations}"
        )


# =============================================================================
# 네임스페이스
# =============================================================================


class _Namespace:
    """단일 네임스페이스 파티션 (CacheStore 내부용)"""

    def __init__(self, name: str):
        self.name = name
        self.entries: dict[str, CacheEntry] = {}
        self.lock = threading.RLock()
        self.stats = CacheStats()

    def evict(self, max_entries: int, now: datetime) -> list[str]:
        """max_entries를 초과한 만큼 제거 (lock 내부에서 호출)

        Returns:
            제거된 키 목록
        """
        if max_entries <= 0:
            return []

        overflow = len(self.entries) - max_entries
        if overflow <= 0:
            return []

        victims = heapq.nsmallest(
            overflow,
            self.entries.values(),
            key=lambda e: (not e.is_expired(now), e.last_accessed_at, e.created_at, e.sequence),
        )
        for victim in victims:
            del self.entries[victim.key]

        self.stats.add_eviction(len(victims))
        return [v.key for v in victims]


# =============================================================================
# CacheStore
# =============================================================================


class CacheStore:
    """네임스페이스 기반 TTL + LRU 캐시

    Args:
        codec: 페이로드 코덱 (기본 msgpack + gzip)
        clock: 현재 시각 함수 (테스트용 주입 가능)
        default_ttl_minutes: put에서 TTL 미지정 시 기본값
        default_max_entries: put에서 최대 크기 미지정 시 기본값 (0 이하면 무제한)
    """

    def __init__(
        self,
        codec: PayloadCodec | None = None,
        clock: Callable[[], datetime] | None = None,
        default_ttl_minutes: int = DEFAULT_TTL_MINUTES,
        default_max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self._codec = codec or PayloadCodec()
        self._clock = clock or datetime.now
        self._default_ttl = default_ttl_minutes
        self._default_max_entries = default_max_entries
        self._namespaces: dict[str, _Namespace] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)

    def now(self) -> datetime:
        """저장소 기준 현재 시각"""
        return self._clock()

    def _get_namespace(self, namespace: str, create: bool = False) -> _Namespace | None:
        with self._lock:
            ns = self._namespaces.get(namespace)
            if ns is None and create:
                ns = _Namespace(namespace)
                self._namespaces[namespace] = ns
                logger.debug(f"캐시 네임스페이스 생성: {namespace}")
            return ns

    def _all_namespaces(self) -> list[_Namespace]:
        with self._lock:
            return list(self._namespaces.values())

    # -------------------------------------------------------------------------
    # 조회/저장
    # -------------------------------------------------------------------------

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        """캐시 조회

        없거나 만료된 키는 default를 반환합니다. 캐시 미스는 에러가 아니라
        새 데이터를 가져오라는 신호입니다.

        Args:
            namespace: 네임스페이스
            key: 캐시 키
            default: 미스 시 반환값 (None 값 캐시를 구분하려면 MISSING 사용)

        Returns:
            캐시된 값 또는 default
        """
        ns = self._get_namespace(namespace)
        if ns is None:
            return default

        with ns.lock:
            entry = ns.entries.get(key)
            if entry is None:
                ns.stats.add_miss()
                return default

            now = self._clock()
            if entry.is_expired(now):
                del ns.entries[key]
                ns.stats.add_miss()
                ns.stats.add_expiration()
                logger.debug(f"캐시 만료 제거: {namespace}/{key}")
                return default

            entry.last_accessed_at = now
            entry.sequence = next(self._sequence)
            payload, compressed = entry.payload, entry.compressed

        # payload는 불변 bytes이므로 lock 밖에서 디코딩
        try:
            value = self._codec.decode(payload, compressed)
        except SerializationError as e:
            logger.warning(f"캐시 페이로드 손상, 엔트리 제거: {namespace}/{key} ({e})")
            with ns.lock:
                current = ns.entries.get(key)
                if current is not None and current.payload is payload:
                    del ns.entries[key]
            ns.stats.add_miss()
            return default

        ns.stats.add_hit()
        return value

    def has(self, namespace: str, key: str) -> bool:
        """유효한 엔트리 존재 여부 (last_accessed_at, 통계 변경 없음)"""
        ns = self._get_namespace(namespace)
        if ns is None:
            return False
        with ns.lock:
            entry = ns.entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def put(
        self,
        namespace: str,
        key: str,
        value: Any,
        ttl_minutes: int | None = None,
        max_entries: int | None = None,
        compress: bool = False,
    ) -> CacheEntryInfo:
        """캐시 저장

        기존 키는 원자적으로 교체되며(last write wins), 저장 후 네임스페이스가
        max_entries를 초과하면 eviction을 수행합니다.

        Args:
            namespace: 네임스페이스
            key: 캐시 키
            value: 저장할 값 (msgpack 직렬화 가능해야 함)
            ttl_minutes: 유효 기간 (None이면 기본값)
            max_entries: 네임스페이스 최대 항목 수 (None이면 기본값, 0 이하면 무제한)
            compress: gzip 압축 여부

        Returns:
            저장된 엔트리 메타데이터

        Raises:
            SerializationError: 값을 직렬화할 수 없는 경우
            ValueError: ttl_minutes가 음수인 경우
        """
        ttl = self._default_ttl if ttl_minutes is None else ttl_minutes
        if ttl < 0:
            raise ValueError(f"ttl_minutes must be >= 0, got {ttl}")
        limit = self._default_max_entries if max_entries is None else max_entries

        try:
            payload, compressed = self._codec.encode(value, compress=compress)
        except SerializationError as e:
            e.namespace = namespace
            e.key = key
            e.details.update({"namespace": namespace, "key": key})
            raise

        ns = self._get_namespace(namespace, create=True)
        assert ns is not None

        with ns.lock:
            now = self._clock()
            entry = CacheEntry(
                key=key,
                namespace=namespace,
                payload=payload,
                created_at=now,
                ttl_minutes=ttl,
                size_bytes=len(payload),
                compressed=compressed,
                last_accessed_at=now,
                sequence=next(self._sequence),
            )
            ns.entries[key] = entry
            ns.stats.add_set()
            evicted = ns.evict(limit, now)

        if evicted:
            logger.debug(f"캐시 eviction: {namespace} {len(evicted)}개 제거 (max_entries={limit})")

        return entry.to_info()

    # -------------------------------------------------------------------------
    # 분석/관리
    # -------------------------------------------------------------------------

    def snapshot(self, namespace: str) -> list[CacheEntryInfo]:
        """네임스페이스 엔트리 메타데이터 목록 (초기화 전이면 빈 리스트)"""
        ns = self._get_namespace(namespace)
        if ns is None:
            return []
        with ns.lock:
            return [entry.to_info() for entry in ns.entries.values()]

    def snapshot_all(self) -> dict[str, list[CacheEntryInfo]]:
        """모든 네임스페이스의 메타데이터"""
        return {ns.name: self.snapshot(ns.name) for ns in self._all_namespaces()}

    def namespaces(self) -> list[str]:
        """초기화된 네임스페이스 이름 목록 (정렬)"""
        with self._lock:
            return sorted(self._namespaces)

    def size(self, namespace: str) -> int:
        """네임스페이스 엔트리 수 (만료 포함)"""
        ns = self._get_namespace(namespace)
        if ns is None:
            return 0
        with ns.lock:
            return len(ns.entries)

    def stats(self, namespace: str | None = None) -> CacheStats:
        """통계 반환 (namespace=None이면 전체 합산 복사본)"""
        if namespace is not None:
            ns = self._get_namespace(namespace)
            return ns.stats if ns is not None else CacheStats()

        total = CacheStats()
        for ns in self._all_namespaces():
            total.merge(ns.stats)
        return total

    def invalidate(self, namespace: str, pattern: str = "*") -> int:
        """패턴(glob)에 맞는 엔트리 제거

        Returns:
            제거된 엔트리 수
        """
        ns = self._get_namespace(namespace)
        if ns is None:
            return 0
        with ns.lock:
            if pattern == "*":
                count = len(ns.entries)
                ns.entries.clear()
                return count
            keys = [k for k in ns.entries if fnmatch.fnmatchcase(k, pattern)]
            for k in keys:
                del ns.entries[k]
            return len(keys)

    def clear(self, namespace: str | None = None) -> int:
        """네임스페이스(또는 전체) 비우기

        Returns:
            제거된 엔트리 수
        """
        if namespace is not None:
            return self.invalidate(namespace)
        return sum(self.invalidate(ns.name) for ns in self._all_namespaces())

    def clear_expired(self, namespace: str | None = None) -> int:
        """만료 엔트리 정리

        Returns:
            제거된 엔트리 수
        """
        targets = self._all_namespaces()
        if namespace is not None:
            targets = [ns for ns in targets if ns.name == namespace]

        removed = 0
        now = self._clock()
        for ns in targets:
            with ns.lock:
                expired = [k for k, e in ns.entries.items() if e.is_expired(now)]
                for k in expired:
                    del ns.entries[k]
            if expired:
                ns.stats.add_expiration(len(expired))
                removed += len(expired)
        return removed

    def __repr__(self) -> str:
        total = sum(len(ns.entries) for ns in self._all_namespaces())
        return f"CacheStore(namespaces={len(self.namespaces())}, entries={total})"
