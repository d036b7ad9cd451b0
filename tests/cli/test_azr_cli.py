"""
tests/cli/test_azr_cli.py - azrecon/cli/app.py 테스트

실제 네트워크 호출 없이 RequestsTransport를 모킹하여 명령어를 실행합니다.
"""

import json
import os
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from azrecon import __version__
from azrecon.cli import cli
from azrecon.parallel.transport import HttpResponse


@pytest.fixture
def runner(monkeypatch):
    """루트 로거를 건드리지 않는 CliRunner"""
    monkeypatch.setattr("azrecon.cli.app.setup_logging", MagicMock())
    return CliRunner()


@pytest.fixture
def wire(monkeypatch):
    """RequestExecutor가 생성하는 기본 전송기 모킹"""
    fake = MagicMock(spec=["send"])
    monkeypatch.setattr("azrecon.parallel.executor.RequestsTransport", MagicMock(return_value=fake))
    return fake


def graph_route(method, url, **kwargs):
    if url.endswith("/v1.0/users"):
        return HttpResponse(200, {}, body={"value": [{"id": "u1", "displayName": "Alice"}]})
    if url.endswith("/v1.0/groups"):
        return HttpResponse(200, {}, body={"value": [{"id": "g1", "displayName": "Admins"}]})
    return HttpResponse(404, {})


class TestGroup:
    """azr 그룹 옵션"""

    def test_version_option(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_version_command(self, runner):
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert result.output.strip() == f"azr {__version__}"

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "fetch" in result.output


class TestResources:
    """azr resources"""

    def test_lists_graph_types(self, runner):
        result = runner.invoke(cli, ["resources", "-n", "graph"])

        assert result.exit_code == 0
        assert "users" in result.output
        assert "subscriptions" not in result.output

    def test_invalid_namespace(self, runner):
        result = runner.invoke(cli, ["resources", "-n", "aws"])
        assert result.exit_code == 2


class TestFetch:
    """azr fetch"""

    def test_single_type(self, runner, wire, monkeypatch):
        monkeypatch.setenv("AZRECON_ACCESS_TOKEN", "arm-token")
        wire.send.return_value = HttpResponse(200, {}, body={"value": [{"id": "/subscriptions/1", "displayName": "dev"}]})

        result = runner.invoke(cli, ["fetch", "subscriptions"])

        assert result.exit_code == 0, result.output
        assert "/subscriptions/1" in result.output
        args, kwargs = wire.send.call_args
        assert args == ("GET", "https://management.azure.com/subscriptions")
        assert dict(kwargs["params"]) == {"api-version": "2022-12-01"}
        assert kwargs["headers"]["Authorization"] == "Bearer arm-token"

    def test_output_file(self, runner, wire, tmp_path):
        wire.send.return_value = HttpResponse(200, {}, body={"value": [{"id": "u1"}]})
        out = tmp_path / "users.json"

        result = runner.invoke(cli, ["fetch", "users", "-q", "$top=5", "-o", str(out)])

        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text(encoding="utf-8")) == [{"id": "u1"}]
        assert dict(wire.send.call_args.kwargs["params"]) == {"$top": "5"}

    def test_multiple_types_in_parallel(self, runner, wire):
        wire.send.side_effect = graph_route

        result = runner.invoke(cli, ["fetch", "users", "groups"])

        assert result.exit_code == 0, result.output
        assert "Alice" in result.output
        assert "Admins" in result.output
        assert wire.send.call_count == 2

    def test_path_params(self, runner, wire):
        wire.send.return_value = HttpResponse(200, {}, body={"value": []})

        result = runner.invoke(cli, ["fetch", "key_vaults", "-p", "subscription_id=sub-1"])

        assert result.exit_code == 0, result.output
        url = wire.send.call_args.args[1]
        assert url == "https://management.azure.com/subscriptions/sub-1/providers/Microsoft.KeyVault/vaults"

    def test_auth_error_exits_1(self, runner, wire):
        """401/403은 재시도 없이 종료 코드 1"""
        wire.send.return_value = HttpResponse(403, {})

        result = runner.invoke(cli, ["fetch", "subscriptions"])

        assert result.exit_code == 1
        assert "권한" in result.output
        assert wire.send.call_count == 1

    def test_missing_path_param(self, runner, wire):
        result = runner.invoke(cli, ["fetch", "storage_accounts"])

        assert result.exit_code == 1
        assert "subscription_id" in result.output
        wire.send.assert_not_called()

    def test_unknown_resource_type(self, runner, wire):
        result = runner.invoke(cli, ["fetch", "s3_buckets"])
        assert result.exit_code == 1
        assert "s3_buckets" in result.output

    def test_bad_key_value(self, runner, wire):
        result = runner.invoke(cli, ["fetch", "users", "-p", "no-equals"])
        assert result.exit_code == 2

    def test_invalid_env(self, runner, wire, monkeypatch):
        monkeypatch.setenv("AZRECON_MAX_RETRIES", "lots")
        result = runner.invoke(cli, ["fetch", "users"])
        assert result.exit_code == 1
        assert "AZRECON_MAX_RETRIES" in result.output

    def test_report_summary(self, runner, wire):
        wire.send.side_effect = graph_route

        result = runner.invoke(cli, ["fetch", "users", "--report", "summary"])

        assert result.exit_code == 0, result.output
        assert "캐시 요약" in result.output

    def test_report_csv(self, runner, wire):
        wire.send.side_effect = graph_route

        result = runner.invoke(cli, ["fetch", "users", "--report", "csv"])

        assert result.exit_code == 0, result.output
        assert "namespace,key,created_at" in result.output

    def test_report_dir_prints_saved_path(self, runner, wire, tmp_path):
        """--report-dir로 저장한 리포트 경로를 출력"""
        wire.send.side_effect = graph_route
        report_dir = tmp_path / "reports"

        result = runner.invoke(cli, ["fetch", "users", "--report-dir", str(report_dir)])

        assert result.exit_code == 0, result.output
        [name] = os.listdir(report_dir)
        assert name.startswith("cache_report_") and name.endswith(".json")
        assert name in result.output
