"""
azrecon/analytics/report.py - 캐시 분석 리포트

운영자가 CacheStore 상태를 점검할 때 사용하는 진입점입니다.
초기화되지 않은 네임스페이스나 빈 캐시에 대해서도 예외 없이 빈 리포트를 만듭니다.

Example:
    report = get_cache_report(store)                               # AnalyticsReport
    get_cache_report(store, "graph", output_format="table", console=console)
    get_cache_report(
        store,
        filters=EntryFilter(expired_only=True),
        sort_by="size",
        output_format="csv",
        export_path="output/",
    )
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from azrecon.cache.types import CacheEntryInfo

from .metrics import (
    CacheMetrics,
    HistogramBucket,
    TrendAnalysis,
    age_histogram,
    analyze_trends,
    compute_metrics,
    generate_recommendations,
    size_histogram,
)
from .query import EntryFilter, SortField, sort_entries

if TYPE_CHECKING:
    from rich.console import Console

    from azrecon.cache.store import CacheStore

logger = logging.getLogger(__name__)

ALL_NAMESPACES = "all"
OUTPUT_FORMATS = ("object", "table", "list", "json", "csv", "xml", "summary")


@dataclass
class NamespaceReport:
    """네임스페이스 단위 분석 결과

    metrics/trends/histograms는 네임스페이스 전체 엔트리 기준이고,
    entries는 필터와 정렬이 적용된 목록입니다.
    """

    namespace: str
    metrics: CacheMetrics
    trends: TrendAnalysis
    size_histogram: list[HistogramBucket]
    age_histogram: list[HistogramBucket]
    recommendations: list[str]
    entries: list[CacheEntryInfo]
    stats: dict[str, Any] = field(default_factory=dict)

    def to_dict(self, now: datetime) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "metrics": self.metrics.to_dict(),
            "trends": self.trends.to_dict(),
            "size_histogram": [b.to_dict() for b in self.size_histogram],
            "age_histogram": [b.to_dict() for b in self.age_histogram],
            "recommendations": list(self.recommendations),
            "stats": dict(self.stats),
            "entries": [e.to_dict(now) for e in self.entries],
        }


@dataclass
class AnalyticsReport:
    """캐시 분석 리포트

    Attributes:
        generated_at: 생성(기준) 시각
        namespaces: 네임스페이스별 결과 (이름순)
        overall: 전체 엔트리 집계
        filters: 적용된 필터
        sort_by: 적용된 정렬 기준
        exported_path: export_path로 저장한 파일 경로 (저장하지 않았으면 None)
    """

    generated_at: datetime
    namespaces: list[NamespaceReport] = field(default_factory=list)
    overall: CacheMetrics = field(default_factory=CacheMetrics)
    filters: EntryFilter | None = None
    sort_by: SortField | None = None
    exported_path: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.overall.is_empty

    def get(self, namespace: str) -> NamespaceReport | None:
        return next((r for r in self.namespaces if r.namespace == namespace), None)

    def all_entries(self) -> list[CacheEntryInfo]:
        """필터/정렬이 적용된 엔트리 (네임스페이스 순)"""
        return [e for r in self.namespaces for e in r.entries]

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "filters": self.filters.to_dict() if self.filters else {},
            "sort_by": self.sort_by.value if self.sort_by else None,
            "overall": self.overall.to_dict(),
            "namespaces": [r.to_dict(self.generated_at) for r in self.namespaces],
        }


def build_namespace_report(
    namespace: str,
    entries: Sequence[CacheEntryInfo],
    now: datetime,
    filters: EntryFilter | None = None,
    sort_by: SortField | None = None,
    stats: dict[str, Any] | None = None,
) -> NamespaceReport:
    """스냅샷 하나로 네임스페이스 리포트 생성"""
    metrics = compute_metrics(entries, now)
    selected = filters.apply(entries, now) if filters else list(entries)
    if sort_by is not None:
        selected = sort_entries(selected, sort_by, now)

    return NamespaceReport(
        namespace=namespace,
        metrics=metrics,
        trends=analyze_trends(entries, now),
        size_histogram=size_histogram(entries),
        age_histogram=age_histogram(entries, now),
        recommendations=generate_recommendations(metrics),
        entries=selected,
        stats=stats or {},
    )


def build_report(
    store: CacheStore,
    namespace: str = ALL_NAMESPACES,
    filters: EntryFilter | None = None,
    sort_by: SortField | str | None = None,
    now: datetime | None = None,
) -> AnalyticsReport:
    """CacheStore 스냅샷으로 AnalyticsReport 생성 (저장소 상태 변경 없음)"""
    now = now or store.now()
    sort_field = SortField.parse(sort_by) if sort_by is not None else None
    names = store.namespaces() if namespace == ALL_NAMESPACES else [namespace]

    reports: list[NamespaceReport] = []
    everything: list[CacheEntryInfo] = []
    for name in names:
        entries = store.snapshot(name)
        if not entries and namespace == ALL_NAMESPACES:
            logger.debug(f"빈 네임스페이스 포함: {name}")
        everything.extend(entries)
        reports.append(
            build_namespace_report(
                name,
                entries,
                now,
                filters=filters,
                sort_by=sort_field,
                stats=store.stats(name).to_dict(),
            )
        )

    return AnalyticsReport(
        generated_at=now,
        namespaces=reports,
        overall=compute_metrics(everything, now),
        filters=filters,
        sort_by=sort_field,
    )


def get_cache_report(
    store: CacheStore,
    namespace: str = ALL_NAMESPACES,
    filters: EntryFilter | None = None,
    sort_by: SortField | str | None = None,
    output_format: str = "object",
    export_path: str | None = None,
    now: datetime | None = None,
    console: Console | None = None,
) -> AnalyticsReport | str:
    """캐시 분석 리포트 생성 및 출력

    Args:
        store: 분석할 캐시 저장소
        namespace: 네임스페이스 이름 또는 "all"
        filters: 엔트리 필터 (AND)
        sort_by: 정렬 기준 (SortField 또는 문자열)
        output_format: object, table, list, json, csv, xml, summary
        export_path: 저장 디렉토리 (지정 시 cache_report_YYYYMMDD_HHMMSS.<ext> 생성).
            object 형식이면 저장 경로가 report.exported_path에 기록되며,
            렌더링 문자열과 함께 경로가 필요하면 export_cache_report를 사용합니다.
        now: 기준 시각 (None이면 저장소 시계)
        console: table/list/summary 출력 대상 rich Console

    Returns:
        output_format="object"면 AnalyticsReport, 그 외에는 렌더링 문자열

    Raises:
        ValueError: 지원하지 않는 output_format 또는 sort_by
    """
    from . import export

    fmt = output_format.lower()
    if fmt not in OUTPUT_FORMATS:
        raise ValueError(f"지원하지 않는 출력 형식 '{output_format}' (가능: {', '.join(OUTPUT_FORMATS)})")

    report = build_report(store, namespace, filters=filters, sort_by=sort_by, now=now)
    logger.debug(
        f"캐시 리포트 생성: 네임스페이스 {len(report.namespaces)}개, 엔트리 {report.overall.total_entries}개"
    )

    if fmt == "object":
        if export_path:
            report.exported_path = export.write_report(export.to_json(report), export_path, "json")
        return report

    content = _render(report, fmt, console)
    if export_path:
        export.write_report(content, export_path, export.EXTENSIONS[fmt])
    return content


def export_cache_report(
    store: CacheStore,
    export_path: str,
    namespace: str = ALL_NAMESPACES,
    filters: EntryFilter | None = None,
    sort_by: SortField | str | None = None,
    output_format: str = "json",
    now: datetime | None = None,
) -> str:
    """캐시 분석 리포트를 파일로 저장하고 생성된 파일 경로 반환

    같은 초에 여러 번 저장해도 기존 파일을 덮어쓰지 않습니다 (_1, _2 ... 접미사).
    output_format="object"는 JSON으로 저장됩니다.
    """
    from . import export

    fmt = output_format.lower()
    if fmt not in OUTPUT_FORMATS:
        raise ValueError(f"지원하지 않는 출력 형식 '{output_format}' (가능: {', '.join(OUTPUT_FORMATS)})")
    if fmt == "object":
        fmt = "json"

    report = build_report(store, namespace, filters=filters, sort_by=sort_by, now=now)
    return export.write_report(_render(report, fmt, None), export_path, export.EXTENSIONS[fmt], now=report.generated_at)


def _render(report: AnalyticsReport, fmt: str, console: Console | None) -> str:
    from . import export

    if fmt in export.RENDERERS:
        renderable = export.RENDERERS[fmt](report)
        if console is not None:
            console.print(renderable)
        return export.render_text(renderable)
    return export.SERIALIZERS[fmt](report)
