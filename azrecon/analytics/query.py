"""
azrecon/analytics/query.py - 엔트리 필터링 / 정렬

필터 조건은 AND로 결합됩니다. 정렬은 필드별 "관심도가 높은 것 먼저" 방향을 기본으로 합니다.

    timestamp      최신 생성 먼저
    size           큰 것 먼저
    key            키 오름차순
    expiration     곧 만료되는 것 먼저
    age            오래된 것 먼저
    remaining_ttl  남은 TTL 적은 것 먼저
"""

from __future__ import annotations

import fnmatch
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from azrecon.cache.types import CacheEntryInfo


@dataclass
class EntryFilter:
    """엔트리 필터 (모든 조건 AND)

    Attributes:
        expired_only: 만료 엔트리만
        valid_only: 유효 엔트리만
        compressed_only: 압축 엔트리만
        min_size_bytes: 이 크기 이상인 엔트리만
        max_age_minutes: 나이가 이 값 이하인 엔트리만
        key_pattern: 키 glob 패턴
    """

    expired_only: bool = False
    valid_only: bool = False
    compressed_only: bool = False
    min_size_bytes: int | None = None
    max_age_minutes: float | None = None
    key_pattern: str | None = None

    def matches(self, entry: CacheEntryInfo, now: datetime) -> bool:
        if self.expired_only and not entry.is_expired(now):
            return False
        if self.valid_only and entry.is_expired(now):
            return False
        if self.compressed_only and not entry.compressed:
            return False
        if self.min_size_bytes is not None and entry.size_bytes < self.min_size_bytes:
            return False
        if self.max_age_minutes is not None and entry.age_seconds(now) / 60 > self.max_age_minutes:
            return False
        if self.key_pattern is not None and not fnmatch.fnmatchcase(entry.key, self.key_pattern):
            return False
        return True

    def apply(self, entries: Iterable[CacheEntryInfo], now: datetime) -> list[CacheEntryInfo]:
        return [e for e in entries if self.matches(e, now)]

    @property
    def is_empty(self) -> bool:
        return self == EntryFilter()

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in vars(self).items() if v not in (None, False)}


class SortField(Enum):
    """정렬 기준"""

    TIMESTAMP = "timestamp"
    SIZE = "size"
    KEY = "key"
    EXPIRATION = "expiration"
    AGE = "age"
    REMAINING_TTL = "remaining_ttl"

    @classmethod
    def parse(cls, value: SortField | str) -> SortField:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(f.value for f in cls)
            raise ValueError(f"지원하지 않는 정렬 기준 '{value}' (가능: {choices})") from None


# (정렬 키, 기본 내림차순 여부)
_SORT_SPECS: dict[SortField, tuple[Callable[[CacheEntryInfo, datetime], Any], bool]] = {
    SortField.TIMESTAMP: (lambda e, now: e.created_at, True),
    SortField.SIZE: (lambda e, now: e.size_bytes, True),
    SortField.KEY: (lambda e, now: e.key, False),
    SortField.EXPIRATION: (lambda e, now: e.expires_at, False),
    SortField.AGE: (lambda e, now: e.age_seconds(now), True),
    SortField.REMAINING_TTL: (lambda e, now: e.remaining_ttl_seconds(now), False),
}


def sort_entries(
    entries: Iterable[CacheEntryInfo],
    sort_by: SortField | str,
    now: datetime,
    descending: bool | None = None,
) -> list[CacheEntryInfo]:
    """엔트리 정렬

    Args:
        entries: 엔트리 메타데이터
        sort_by: 정렬 기준
        now: 나이/남은 TTL 계산 기준 시각
        descending: 방향 강제 (None이면 필드 기본 방향)
    """
    key_func, default_desc = _SORT_SPECS[SortField.parse(sort_by)]
    reverse = default_desc if descending is None else descending
    # 동일 값은 키 순으로 고정
    ordered = sorted(entries, key=lambda e: e.key)
    return sorted(ordered, key=lambda e: key_func(e, now), reverse=reverse)
