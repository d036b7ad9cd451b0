"""
tests/analytics/test_analytics_report.py - 필터/정렬, 리포트, 내보내기 테스트
"""

import csv
import io
import json
import os
import xml.etree.ElementTree as ET

import pytest
from rich.console import Console

from azrecon.analytics.query import EntryFilter, SortField, sort_entries
from azrecon.analytics.export import write_report
from azrecon.analytics.report import AnalyticsReport, build_report, export_cache_report, get_cache_report


@pytest.fixture
def populated(store, clock):
    """arm 3개, graph 2개 엔트리가 있는 저장소 (일부 만료)"""
    store.put("arm", "subscriptions", {"value": list(range(10))}, ttl_minutes=60)
    clock.advance(minutes=10)
    store.put("arm", "storage/big", {"data": "x" * 4000}, ttl_minutes=5, compress=True)
    clock.advance(minutes=10)
    store.put("arm", "vaults", [1, 2, 3], ttl_minutes=60)
    store.put("graph", "users", [{"id": "u1"}], ttl_minutes=1)
    store.put("graph", "groups", [], ttl_minutes=120)
    clock.advance(minutes=2)
    return store


class TestEntryFilter:
    """EntryFilter 테스트"""

    def test_expired_only(self, populated, clock):
        entries = EntryFilter(expired_only=True).apply(populated.snapshot("arm"), clock())
        assert [e.key for e in entries] == ["storage/big"]

    def test_valid_only(self, populated, clock):
        entries = EntryFilter(valid_only=True).apply(populated.snapshot("arm"), clock())
        assert {e.key for e in entries} == {"subscriptions", "vaults"}

    def test_and_semantics(self, populated, clock):
        """조건은 AND로 결합"""
        f = EntryFilter(valid_only=True, compressed_only=True)
        assert f.apply(populated.snapshot("arm"), clock()) == []

    def test_size_and_age(self, populated, clock):
        now = clock()
        large = EntryFilter(min_size_bytes=20).apply(populated.snapshot("arm"), now)
        assert [e.key for e in large] == ["storage/big"]
        young = EntryFilter(max_age_minutes=5).apply(populated.snapshot("arm"), now)
        assert [e.key for e in young] == ["vaults"]

    def test_key_pattern(self, populated, clock):
        entries = EntryFilter(key_pattern="s*").apply(populated.snapshot("arm"), clock())
        assert {e.key for e in entries} == {"subscriptions", "storage/big"}

    def test_is_empty(self):
        assert EntryFilter().is_empty
        assert not EntryFilter(valid_only=True).is_empty


class TestSortEntries:
    """sort_entries 테스트"""

    @pytest.mark.parametrize(
        "field,expected",
        [
            ("timestamp", ["vaults", "storage/big", "subscriptions"]),
            ("key", ["storage/big", "subscriptions", "vaults"]),
            ("age", ["subscriptions", "storage/big", "vaults"]),
            ("expiration", ["storage/big", "subscriptions", "vaults"]),
            ("remaining_ttl", ["storage/big", "subscriptions", "vaults"]),
        ],
    )
    def test_natural_order(self, populated, clock, field, expected):
        entries = sort_entries(populated.snapshot("arm"), field, clock())
        assert [e.key for e in entries] == expected

    def test_size_descending(self, populated, clock):
        entries = sort_entries(populated.snapshot("arm"), SortField.SIZE, clock())
        sizes = [e.size_bytes for e in entries]
        assert sizes == sorted(sizes, reverse=True)

    def test_direction_override(self, populated, clock):
        entries = sort_entries(populated.snapshot("arm"), "key", clock(), descending=True)
        assert [e.key for e in entries] == ["vaults", "subscriptions", "storage/big"]

    def test_unknown_field(self, populated, clock):
        with pytest.raises(ValueError, match="정렬 기준"):
            sort_entries(populated.snapshot("arm"), "color", clock())


class TestBuildReport:
    """리포트 생성"""

    def test_all_namespaces(self, populated):
        report = build_report(populated)

        assert isinstance(report, AnalyticsReport)
        assert [ns.namespace for ns in report.namespaces] == ["arm", "graph"]
        assert report.overall.total_entries == 5
        assert report.overall.expired_entries == 2

    def test_single_namespace(self, populated):
        report = build_report(populated, "graph")
        assert [ns.namespace for ns in report.namespaces] == ["graph"]
        assert report.get("graph").metrics.total_entries == 2

    def test_filters_apply_to_entries_not_metrics(self, populated):
        report = build_report(populated, "arm", filters=EntryFilter(expired_only=True))
        arm = report.get("arm")
        assert arm.metrics.total_entries == 3
        assert [e.key for e in arm.entries] == ["storage/big"]

    def test_report_does_not_touch_entries(self, populated):
        before = populated.snapshot("arm")
        build_report(populated)
        assert populated.snapshot("arm") == before

    def test_uninitialized_namespace_empty_report(self, store):
        """초기화되지 않은 네임스페이스는 예외 없이 빈 리포트"""
        report = build_report(store, "never")

        assert report.is_empty
        ns = report.get("never")
        assert ns.entries == []
        assert ns.size_histogram == []
        assert ns.trends.peak_hour is None

    def test_empty_store_all(self, store):
        report = build_report(store)
        assert report.namespaces == []
        assert report.to_dict()["overall"]["total_entries"] == 0

    def test_stats_included(self, populated):
        populated.get("arm", "vaults")
        report = build_report(populated, "arm")
        assert report.get("arm").stats["hits"] == 1


class TestGetCacheReport:
    """get_cache_report 출력 형식"""

    def test_object_default(self, populated):
        assert isinstance(get_cache_report(populated), AnalyticsReport)

    def test_json(self, populated):
        data = json.loads(get_cache_report(populated, output_format="json", sort_by="key"))

        assert data["sort_by"] == "key"
        arm = data["namespaces"][0]
        assert arm["namespace"] == "arm"
        assert [e["key"] for e in arm["entries"]] == ["storage/big", "subscriptions", "vaults"]
        assert "recommendations" in arm

    def test_csv(self, populated):
        text = get_cache_report(populated, "arm", filters=EntryFilter(valid_only=True), output_format="csv")
        rows = list(csv.DictReader(io.StringIO(text)))

        assert {r["key"] for r in rows} == {"subscriptions", "vaults"}
        assert all(r["is_expired"] == "False" for r in rows)

    def test_xml(self, populated):
        root = ET.fromstring(get_cache_report(populated, output_format="xml").split("?>", 1)[1])

        assert root.tag == "cache_report"
        namespaces = root.find("namespaces").findall("namespace")
        assert len(namespaces) == 2
        assert len(namespaces[0].find("entries").findall("entry")) == 3

    @pytest.mark.parametrize("fmt", ["table", "list", "summary"])
    def test_human_renderings(self, populated, fmt):
        console = Console(file=io.StringIO(), width=160)
        text = get_cache_report(populated, output_format=fmt, console=console)

        assert "subscriptions" in text or fmt == "summary"
        assert console.file.getvalue()

    def test_summary_contains_namespaces(self, populated):
        text = get_cache_report(populated, output_format="summary")
        assert "arm" in text and "graph" in text

    def test_summary_advice_keeps_namespace_prefix(self, populated):
        """권고 문구의 [graph] 접두어가 markup으로 사라지지 않음"""
        text = get_cache_report(populated, output_format="summary")
        assert "[graph] 유효 엔트리 비율이 50.0%" in text

    def test_summary_advice_prefix_for_expired_arm(self, store, clock):
        """만료 엔트리만 있는 arm의 권고에 [arm] 접두어 표시"""
        store.put("arm", "subscriptions", [1], ttl_minutes=1)
        clock.advance(minutes=5)

        text = get_cache_report(store, output_format="summary")

        assert "[arm] 유효 엔트리 비율이 0.0%" in text

    def test_table_keys_with_brackets(self, store):
        """대괄호가 들어간 키가 그대로 표시됨"""
        store.put("graph", "users[true]", [1], ttl_minutes=30)
        store.put("graph", "groups[bold]x[/bold]", [2], ttl_minutes=30)

        text = get_cache_report(store, output_format="table")

        assert "users[true]" in text
        assert "groups[bold]x[/bold]" in text

    @pytest.mark.parametrize("fmt", ["table", "list", "summary", "json", "csv", "xml"])
    def test_empty_store_never_raises(self, store, fmt):
        assert isinstance(get_cache_report(store, output_format=fmt), str)

    def test_unknown_format(self, store):
        with pytest.raises(ValueError):
            get_cache_report(store, output_format="pdf")

    def test_export_path(self, populated, tmp_path):
        content = get_cache_report(populated, output_format="csv", export_path=str(tmp_path / "out"))

        files = os.listdir(tmp_path / "out")
        assert len(files) == 1
        name = files[0]
        assert name.startswith("cache_report_") and name.endswith(".csv")
        assert len(name) == len("cache_report_YYYYMMDD_HHMMSS.csv")
        with open(tmp_path / "out" / name, encoding="utf-8-sig") as f:
            assert f.read() == content

    def test_export_object_as_json(self, populated, tmp_path):
        report = get_cache_report(populated, export_path=str(tmp_path))
        [name] = os.listdir(tmp_path)
        assert name.endswith(".json")
        assert report.exported_path == os.path.join(str(tmp_path), name)

    def test_object_without_export_has_no_path(self, populated):
        assert get_cache_report(populated).exported_path is None


class TestExportCacheReport:
    """export_cache_report / write_report 파일 저장"""

    def test_returns_written_path(self, populated, tmp_path, clock):
        path = export_cache_report(populated, str(tmp_path), output_format="csv")

        assert path == os.path.join(str(tmp_path), f"cache_report_{clock():%Y%m%d_%H%M%S}.csv")
        with open(path, encoding="utf-8-sig") as f:
            assert f.readline().startswith("namespace,key")

    def test_same_second_exports_do_not_collide(self, populated, tmp_path, clock):
        """같은 초의 두 번째 저장은 _1 접미사로 새 파일 생성"""
        first = export_cache_report(populated, str(tmp_path), output_format="json")
        second = export_cache_report(populated, str(tmp_path), output_format="json")

        stamp = f"{clock():%Y%m%d_%H%M%S}"
        assert os.path.basename(first) == f"cache_report_{stamp}.json"
        assert os.path.basename(second) == f"cache_report_{stamp}_1.json"
        assert len(os.listdir(tmp_path)) == 2

    def test_existing_file_not_overwritten(self, tmp_path, clock):
        first = write_report("first", str(tmp_path), "txt", now=clock())
        second = write_report("second", str(tmp_path), "txt", now=clock())
        third = write_report("third", str(tmp_path), "txt", now=clock())

        assert [os.path.basename(p) for p in (first, second, third)] == [
            f"cache_report_{clock():%Y%m%d_%H%M%S}.txt",
            f"cache_report_{clock():%Y%m%d_%H%M%S}_1.txt",
            f"cache_report_{clock():%Y%m%d_%H%M%S}_2.txt",
        ]
        with open(first, encoding="utf-8") as f:
            assert f.read() == "first"

    def test_object_format_saved_as_json(self, populated, tmp_path):
        path = export_cache_report(populated, str(tmp_path), output_format="object")
        with open(path, encoding="utf-8") as f:
            assert json.load(f)["namespaces"][0]["namespace"] == "arm"

    def test_unknown_format(self, populated, tmp_path):
        with pytest.raises(ValueError):
            export_cache_report(populated, str(tmp_path), output_format="pdf")
        assert os.listdir(tmp_path) == []
