"""
azrecon/analytics/export.py - 리포트 직렬화 및 렌더링

- 기계용: to_json(집계 + 엔트리), to_csv(엔트리 행), to_xml(집계 + 엔트리)
- 사람용: render_table, render_list, render_summary (rich renderable)
"""

from __future__ import annotations

import csv
import io
import json
import logging
import os
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from .report import AnalyticsReport

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "namespace",
    "key",
    "created_at",
    "last_accessed_at",
    "expires_at",
    "ttl_minutes",
    "size_bytes",
    "compressed",
    "is_expired",
    "age_seconds",
    "remaining_ttl_seconds",
]

RENDER_WIDTH = 120

# 리스트 요소 태그 (그 외는 <item>)
XML_ITEM_TAGS = {
    "namespaces": "namespace",
    "entries": "entry",
    "recommendations": "recommendation",
    "size_histogram": "bucket",
    "age_histogram": "bucket",
}


def format_bytes(size: float) -> str:
    """바이트를 사람이 읽기 쉬운 단위로 변환"""
    for unit in ("B", "KB", "MB"):
        if abs(size) < 1024:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}GB"


def _format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


# =============================================================================
# 기계용 직렬화
# =============================================================================


def to_json(report: AnalyticsReport) -> str:
    return json.dumps(report.to_dict(), ensure_ascii=False, indent=2, default=str)


def to_csv(report: AnalyticsReport) -> str:
    """필터/정렬된 엔트리를 CSV 행으로 직렬화"""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for entry in report.all_entries():
        writer.writerow(entry.to_dict(report.generated_at))
    return buffer.getvalue()


def _append_xml(parent: ET.Element, tag: str, value: Any) -> None:
    element = ET.SubElement(parent, tag)
    if isinstance(value, dict):
        for key, child in value.items():
            _append_xml(element, key, child)
    elif isinstance(value, list):
        item_tag = XML_ITEM_TAGS.get(tag, "item")
        for child in value:
            _append_xml(element, item_tag, child)
    elif value is None:
        pass
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    else:
        element.text = str(value)


def to_xml(report: AnalyticsReport) -> str:
    root = ET.Element("cache_report")
    for key, value in report.to_dict().items():
        _append_xml(root, key, value)
    ET.indent(root)
    return ET.tostring(root, encoding="unicode", xml_declaration=True)


# =============================================================================
# 사람용 렌더링
# =============================================================================


def render_table(report: AnalyticsReport) -> RenderableType:
    """네임스페이스별 엔트리 테이블"""
    now = report.generated_at
    if not report.namespaces:
        return Text("캐시 데이터가 없습니다", style="dim")

    tables: list[RenderableType] = []
    for ns in report.namespaces:
        table = Table(title=f"{ns.namespace} ({len(ns.entries)}/{ns.metrics.total_entries})", title_justify="left")
        table.add_column("Key", overflow="fold")
        table.add_column("Size", justify="right")
        table.add_column("Compressed", justify="center")
        table.add_column("Created")
        table.add_column("Remaining TTL", justify="right")
        table.add_column("Status")

        for entry in ns.entries:
            expired = entry.is_expired(now)
            table.add_row(
                Text(entry.key),
                format_bytes(entry.size_bytes),
                "Y" if entry.compressed else "",
                entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                _format_duration(entry.remaining_ttl_seconds(now)),
                "[red]expired[/red]" if expired else "[green]valid[/green]",
            )
        tables.append(table)
    return Group(*tables)


def render_list(report: AnalyticsReport) -> RenderableType:
    """엔트리 한 줄 목록"""
    now = report.generated_at
    lines: list[RenderableType] = []
    for entry in report.all_entries():
        status = "expired" if entry.is_expired(now) else "valid"
        line = Text()
        line.append("• ")
        line.append(f"{entry.namespace}/", style="dim")
        line.append(entry.key, style="bold")
        line.append(
            f"  {format_bytes(entry.size_bytes)}, {status}, 남은 TTL {_format_duration(entry.remaining_ttl_seconds(now))}"
        )
        lines.append(line)
    if not lines:
        lines.append(Text("표시할 엔트리가 없습니다", style="dim"))
    return Group(*lines)


def render_summary(report: AnalyticsReport) -> RenderableType:
    """네임스페이스별 지표 요약 + 권고"""
    table = Table(title=f"캐시 요약 ({report.generated_at:%Y-%m-%d %H:%M:%S})", title_justify="left")
    table.add_column("Namespace")
    table.add_column("Entries", justify="right")
    table.add_column("Valid", justify="right")
    table.add_column("Expired", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Hit Rate*", justify="right")
    table.add_column("Compression", justify="right")
    table.add_column("Trend")

    for ns in report.namespaces:
        m = ns.metrics
        table.add_row(
            Text(ns.namespace),
            str(m.total_entries),
            str(m.valid_entries),
            str(m.expired_entries),
            format_bytes(m.total_size_bytes),
            f"{m.hit_rate_estimate:.1f}%",
            f"{m.compression_ratio:.1f}%",
            Text(ns.trends.prediction),
        )

    overall = report.overall
    table.add_section()
    table.add_row(
        "[bold]total[/bold]",
        str(overall.total_entries),
        str(overall.valid_entries),
        str(overall.expired_entries),
        format_bytes(overall.total_size_bytes),
        f"{overall.hit_rate_estimate:.1f}%",
        f"{overall.compression_ratio:.1f}%",
        "",
    )

    # 권고 문구는 markup으로 해석하지 않음 ([arm] 접두어 유지)
    advice = Text()
    for ns in report.namespaces:
        for r in ns.recommendations:
            if advice:
                advice.append("\n")
            advice.append(f"[{ns.namespace}] ", style="bold")
            advice.append(r)
    if not report.namespaces:
        advice.append("캐시 데이터가 없습니다. 조회를 실행한 뒤 다시 분석하세요.")
    if not advice:
        advice.append("권고 사항 없음", style="dim")

    return Group(
        table,
        Panel(advice, title="권고", border_style="yellow", expand=False),
    )


def render_text(renderable: RenderableType, width: int = RENDER_WIDTH) -> str:
    """rich renderable을 평문으로 변환 (파일 저장용)"""
    console = Console(file=io.StringIO(), width=width, record=True, color_system=None, force_terminal=False)
    console.print(renderable)
    return console.export_text()


SERIALIZERS: dict[str, Callable[[AnalyticsReport], str]] = {
    "json": to_json,
    "csv": to_csv,
    "xml": to_xml,
}

RENDERERS: dict[str, Callable[[AnalyticsReport], RenderableType]] = {
    "table": render_table,
    "list": render_list,
    "summary": render_summary,
}

EXTENSIONS = {
    "json": "json",
    "csv": "csv",
    "xml": "xml",
    "table": "txt",
    "list": "txt",
    "summary": "txt",
}


def write_report(content: str, export_path: str, extension: str, now: datetime | None = None) -> str:
    """리포트를 cache_report_YYYYMMDD_HHMMSS.<ext> 로 저장

    같은 이름의 파일이 이미 있으면 덮어쓰지 않고 _1, _2 ... 접미사를 붙입니다.

    Args:
        content: 저장할 문자열
        export_path: 저장 디렉토리 (없으면 생성)
        extension: 파일 확장자
        now: 파일명 타임스탬프 (None이면 현재 시각)

    Returns:
        생성된 파일 경로
    """
    os.makedirs(export_path, exist_ok=True)
    timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    encoding = "utf-8-sig" if extension == "csv" else "utf-8"

    suffix = 0
    while True:
        name = f"cache_report_{timestamp}" + (f"_{suffix}" if suffix else "")
        filepath = os.path.join(export_path, f"{name}.{extension}")
        try:
            # 배타적 생성 (기존 파일은 덮어쓰지 않음)
            with open(filepath, "x", newline="", encoding=encoding) as f:
                f.write(content)
            break
        except FileExistsError:
            suffix += 1

    logger.info(f"캐시 리포트 저장: {filepath}")
    return filepath
