"""
azrecon/cache/types.py - 캐시 엔트리 타입

CacheEntry는 저장소 내부 레코드이고, CacheEntryInfo는 분석용으로 내보내는
페이로드 없는 읽기 전용 메타데이터 복사본입니다.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any


@dataclass
class CacheEntry:
    """캐시 엔트리 (저장소 내부용)

    Attributes:
        key: 캐시 키
        namespace: 소속 네임스페이스
        payload: 직렬화(및 선택적 압축)된 값
        created_at: 생성 시각
        ttl_minutes: 유효 기간 (분)
        size_bytes: 페이로드 크기 (압축 후 기준)
        compressed: 압축 여부
        last_accessed_at: 마지막 조회 시각
        sequence: 삽입/조회 순서 (동일 시각 eviction 동률 처리용)
    """

    key: str
    namespace: str
    payload: bytes
    created_at: datetime
    ttl_minutes: int
    size_bytes: int
    compressed: bool
    last_accessed_at: datetime
    sequence: int = 0

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(minutes=self.ttl_minutes)

    def is_expired(self, now: datetime) -> bool:
        """now >= created_at + ttl 이면 만료"""
        return now >= self.expires_at

    def to_info(self) -> CacheEntryInfo:
        """페이로드를 제외한 메타데이터 복사본 생성"""
        return CacheEntryInfo(
            key=self.key,
            namespace=self.namespace,
            created_at=self.created_at,
            last_accessed_at=self.last_accessed_at,
            ttl_minutes=self.ttl_minutes,
            size_bytes=self.size_bytes,
            compressed=self.compressed,
        )


@dataclass(frozen=True)
class CacheEntryInfo:
    """캐시 엔트리 메타데이터 (읽기 전용)"""

    key: str
    namespace: str
    created_at: datetime
    last_accessed_at: datetime
    ttl_minutes: int
    size_bytes: int
    compressed: bool

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(minutes=self.ttl_minutes)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()

    def remaining_ttl_seconds(self, now: datetime) -> float:
        """남은 TTL (만료 시 0)"""
        return max((self.expires_at - now).total_seconds(), 0.0)

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        """딕셔너리로 변환 (now가 주어지면 파생 필드 포함)"""
        data: dict[str, Any] = {
            "namespace": self.namespace,
            "key": self.key,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "ttl_minutes": self.ttl_minutes,
            "size_bytes": self.size_bytes,
            "compressed": self.compressed,
        }
        if now is not None:
            data["is_expired"] = self.is_expired(now)
            data["age_seconds"] = round(self.age_seconds(now), 3)
            data["remaining_ttl_seconds"] = round(self.remaining_ttl_seconds(now), 3)
        return data
