"""
azrecon/analytics - 캐시 분석 및 리포트

구성:
    metrics - 집계 지표, 트렌드, 히스토그램, 권고
    query   - EntryFilter, SortField
    report  - AnalyticsReport, get_cache_report, export_cache_report
    export  - JSON/CSV/XML 직렬화, rich 렌더링

사용법:
    from azrecon.analytics import EntryFilter, get_cache_report

    print(get_cache_report(store, "arm", filters=EntryFilter(valid_only=True), output_format="json"))

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

__all__ = [
    "CacheMetrics",
    "TrendAnalysis",
    "HistogramBucket",
    "compute_metrics",
    "analyze_trends",
    "build_histogram",
    "size_histogram",
    "age_histogram",
    "generate_recommendations",
    "EntryFilter",
    "SortField",
    "sort_entries",
    "AnalyticsReport",
    "NamespaceReport",
    "build_report",
    "get_cache_report",
    "export_cache_report",
    "to_json",
    "to_csv",
    "to_xml",
    "render_table",
    "render_list",
    "render_summary",
]

_LAZY_ATTRS = {
    "CacheMetrics": "metrics",
    "TrendAnalysis": "metrics",
    "HistogramBucket": "metrics",
    "compute_metrics": "metrics",
    "analyze_trends": "metrics",
    "build_histogram": "metrics",
    "size_histogram": "metrics",
    "age_histogram": "metrics",
    "generate_recommendations": "metrics",
    "EntryFilter": "query",
    "SortField": "query",
    "sort_entries": "query",
    "AnalyticsReport": "report",
    "NamespaceReport": "report",
    "build_report": "report",
    "get_cache_report": "report",
    "export_cache_report": "report",
    "to_json": "export",
    "to_csv": "export",
    "to_xml": "export",
    "render_table": "export",
    "render_list": "export",
    "render_summary": "export",
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    module_name = _LAZY_ATTRS.get(name)
    if module_name is not None:
        import importlib

        module = importlib.import_module(f"{__name__}.{module_name}")
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
