"""
azrecon/analytics/metrics.py - 캐시 집계 지표 / 트렌드 / 히스토그램

CacheStore.snapshot()이 반환한 메타데이터만 읽으며 저장소 상태를 바꾸지 않습니다.
빈 목록에 대해서는 모든 지표가 0 또는 None인 결과를 반환합니다.

주요 구성 요소:
- CacheMetrics / compute_metrics: 개수, 크기, 비율 집계
- TrendAnalysis / analyze_trends: 성장률, 피크 시간대, 회전율, 예측
- HistogramBucket / build_histogram: 등간격 히스토그램 (size_histogram, age_histogram)
- generate_recommendations: 임계값 기반 권고 문구
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from azrecon.cache.types import CacheEntryInfo

DEFAULT_SIZE_BUCKETS = 10
DEFAULT_AGE_BUCKETS = 8

# 트렌드 예측 임계값 (%)
RAPID_GROWTH_THRESHOLD = 75.0
HIGH_EXPIRATION_THRESHOLD = 50.0
LOW_ACTIVITY_THRESHOLD = 10.0
GROWTH_WINDOW = timedelta(hours=24)

# 권고 임계값
LOW_HIT_RATE_THRESHOLD = 60.0
LARGE_CACHE_BYTES = 100 * 1024 * 1024
LARGE_ENTRY_COUNT = 500


def _percent(part: int, total: int) -> float:
    return part / total * 100 if total > 0 else 0.0


# =============================================================================
# 집계 지표
# =============================================================================


@dataclass
class CacheMetrics:
    """네임스페이스 집계 지표

    Attributes:
        total_entries: 전체 엔트리 수
        valid_entries: 유효 엔트리 수
        expired_entries: 만료 엔트리 수
        compressed_entries: 압축 엔트리 수
        total_size_bytes: 전체 페이로드 크기
        average_size_bytes: 평균 페이로드 크기
        oldest_entry: 가장 오래된 created_at
        newest_entry: 가장 최근 created_at
        hit_rate_estimate: valid / total * 100
        expiration_rate: expired / total * 100
        compression_ratio: compressed / total * 100
    """

    total_entries: int = 0
    valid_entries: int = 0
    expired_entries: int = 0
    compressed_entries: int = 0
    total_size_bytes: int = 0
    average_size_bytes: float = 0.0
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None
    hit_rate_estimate: float = 0.0
    expiration_rate: float = 0.0
    compression_ratio: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.total_entries == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "valid_entries": self.valid_entries,
            "expired_entries": self.expired_entries,
            "compressed_entries": self.compressed_entries,
            "total_size_bytes": self.total_size_bytes,
            "average_size_bytes": round(self.average_size_bytes, 2),
            "oldest_entry": self.oldest_entry.isoformat() if self.oldest_entry else None,
            "newest_entry": self.newest_entry.isoformat() if self.newest_entry else None,
            "hit_rate_estimate": round(self.hit_rate_estimate, 2),
            "expiration_rate": round(self.expiration_rate, 2),
            "compression_ratio": round(self.compression_ratio, 2),
        }


def compute_metrics(entries: Sequence[CacheEntryInfo], now: datetime) -> CacheMetrics:
    """엔트리 메타데이터 집계"""
    total = len(entries)
    if total == 0:
        return CacheMetrics()

    expired = sum(1 for e in entries if e.is_expired(now))
    compressed = sum(1 for e in entries if e.compressed)
    total_size = sum(e.size_bytes for e in entries)
    created = [e.created_at for e in entries]

    return CacheMetrics(
        total_entries=total,
        valid_entries=total - expired,
        expired_entries=expired,
        compressed_entries=compressed,
        total_size_bytes=total_size,
        average_size_bytes=total_size / total,
        oldest_entry=min(created),
        newest_entry=max(created),
        hit_rate_estimate=_percent(total - expired, total),
        expiration_rate=_percent(expired, total),
        compression_ratio=_percent(compressed, total),
    )


# =============================================================================
# 트렌드
# =============================================================================


@dataclass
class TrendAnalysis:
    """트렌드 분석 결과

    Attributes:
        growth_rate: 최근 24시간 내 생성된 엔트리 비율 (%)
        peak_hour: 생성 시각(시)의 최빈값 (동률이면 이른 시각, 비어 있으면 None)
        turnover_rate: 회전율 (= 만료율, %)
        predictions: 임계값 기반 예측 라벨
    """

    growth_rate: float = 0.0
    peak_hour: int | None = None
    turnover_rate: float = 0.0
    predictions: list[str] = field(default_factory=list)

    @property
    def prediction(self) -> str:
        return ", ".join(self.predictions) if self.predictions else "stable"

    def to_dict(self) -> dict[str, Any]:
        return {
            "growth_rate": round(self.growth_rate, 2),
            "peak_hour": self.peak_hour,
            "turnover_rate": round(self.turnover_rate, 2),
            "prediction": self.prediction,
        }


def analyze_trends(entries: Sequence[CacheEntryInfo], now: datetime) -> TrendAnalysis:
    """성장률, 피크 시간대, 회전율 분석 및 예측"""
    total = len(entries)
    if total == 0:
        return TrendAnalysis()

    recent = sum(1 for e in entries if now - e.created_at < GROWTH_WINDOW)
    expired = sum(1 for e in entries if e.is_expired(now))
    growth_rate = _percent(recent, total)
    turnover_rate = _percent(expired, total)

    hours = Counter(e.created_at.hour for e in entries)
    peak_hour = min(hours, key=lambda h: (-hours[h], h))

    predictions: list[str] = []
    if growth_rate > RAPID_GROWTH_THRESHOLD:
        predictions.append("rapid growth")
    if turnover_rate > HIGH_EXPIRATION_THRESHOLD:
        predictions.append("high expiration")
    if growth_rate < LOW_ACTIVITY_THRESHOLD:
        predictions.append("low activity")

    return TrendAnalysis(
        growth_rate=growth_rate,
        peak_hour=peak_hour,
        turnover_rate=turnover_rate,
        predictions=predictions,
    )


# =============================================================================
# 히스토그램
# =============================================================================


@dataclass(frozen=True)
class HistogramBucket:
    """히스토그램 구간 [lower, upper) (마지막 구간은 upper 포함)"""

    lower: float
    upper: float
    count: int
    percentage: float

    @property
    def label(self) -> str:
        return f"{self.lower:,.0f}-{self.upper:,.0f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "lower": round(self.lower, 3),
            "upper": round(self.upper, 3),
            "count": self.count,
            "percentage": round(self.percentage, 2),
        }


def build_histogram(values: Sequence[float], bucket_count: int) -> list[HistogramBucket]:
    """min~max 등간격 히스토그램

    모든 값이 같으면 구간 1개를 반환합니다.
    """
    if bucket_count < 1:
        raise ValueError(f"bucket_count must be >= 1, got {bucket_count}")
    if not values:
        return []

    total = len(values)
    low, high = min(values), max(values)
    if low == high:
        return [HistogramBucket(low, high, total, 100.0)]

    width = (high - low) / bucket_count
    counts = [0] * bucket_count
    for value in values:
        counts[min(int((value - low) / width), bucket_count - 1)] += 1

    return [
        HistogramBucket(
            lower=low + i * width,
            upper=high if i == bucket_count - 1 else low + (i + 1) * width,
            count=count,
            percentage=_percent(count, total),
        )
        for i, count in enumerate(counts)
    ]


def size_histogram(entries: Sequence[CacheEntryInfo], bucket_count: int = DEFAULT_SIZE_BUCKETS) -> list[HistogramBucket]:
    """페이로드 크기(bytes) 히스토그램"""
    return build_histogram([e.size_bytes for e in entries], bucket_count)


def age_histogram(
    entries: Sequence[CacheEntryInfo],
    now: datetime,
    bucket_count: int = DEFAULT_AGE_BUCKETS,
) -> list[HistogramBucket]:
    """엔트리 나이(분) 히스토그램"""
    return build_histogram([e.age_seconds(now) / 60 for e in entries], bucket_count)


# =============================================================================
# 권고
# =============================================================================


def generate_recommendations(metrics: CacheMetrics) -> list[str]:
    """임계값 기반 권고 문구 (조치는 수행하지 않음)"""
    if metrics.is_empty:
        return ["캐시 데이터가 없습니다. 조회를 실행한 뒤 다시 분석하세요."]

    recommendations: list[str] = []
    if metrics.hit_rate_estimate < LOW_HIT_RATE_THRESHOLD:
        recommendations.append(
            f"유효 엔트리 비율이 {metrics.hit_rate_estimate:.1f}%입니다. TTL(expiration_minutes)을 늘리는 것을 검토하세요."
        )
    if metrics.total_size_bytes > LARGE_CACHE_BYTES and metrics.compressed_entries == 0:
        recommendations.append(
            f"캐시 크기가 {metrics.total_size_bytes / 1024 / 1024:.1f}MB이며 압축된 엔트리가 없습니다. compress 옵션을 켜세요."
        )
    if metrics.total_entries > LARGE_ENTRY_COUNT:
        recommendations.append(
            f"엔트리가 {metrics.total_entries}개입니다. max_cache_size를 조정해 eviction 정책을 튜닝하세요."
        )
    if metrics.expiration_rate > HIGH_EXPIRATION_THRESHOLD:
        recommendations.append(
            f"만료 엔트리 비율이 {metrics.expiration_rate:.1f}%입니다. clear_expired()로 만료 엔트리를 정리하세요."
        )
    return recommendations
