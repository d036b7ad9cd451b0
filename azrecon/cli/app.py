"""
azrecon/cli/app.py - CLI 엔트리포인트

Click 기반의 얇은 CLI입니다. 토큰과 실행 설정은 AZRECON_* 환경 변수에서 읽습니다.

명령어 구조:
    azr resources [-n arm|graph]                 # 등록된 리소스 타입 목록
    azr fetch <resource-type>... -p key=value    # 조회 (여러 타입이면 병렬)
    azr version                                  # 버전 표시

    예시:
    azr fetch subscriptions
    azr fetch storage_accounts key_vaults -p subscription_id=0000... --compress
    azr fetch users --report summary
"""

from __future__ import annotations

import json
import logging

import click
from rich.table import Table

from azrecon import __version__
from azrecon.exceptions import AzReconError, format_error_for_user

from .console import ProgressTracker, console, get_progress, print_error, print_success, print_warning, setup_logging

logger = logging.getLogger(__name__)

REPORT_FORMATS = ["table", "list", "json", "csv", "xml", "summary"]


def _parse_key_values(values: tuple[str, ...], option: str) -> dict[str, str]:
    """key=value 목록 파싱"""
    parsed: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"key=value 형식이어야 합니다: '{item}'", param_hint=option)
        parsed[key.strip()] = value.strip()
    return parsed


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", prog_name="azr")
@click.option("-v", "--verbose", count=True, help="로그 상세도 (-v: INFO, -vv: DEBUG)")
def cli(verbose: int) -> None:
    """Azure ARM / Microsoft Graph 캐시 연동 조회 도구"""
    setup_logging(verbose)


@cli.command("resources")
@click.option("-n", "--namespace", type=click.Choice(["arm", "graph"]), default=None, help="API 패밀리 필터")
def resources_cmd(namespace: str | None) -> None:
    """등록된 리소스 타입 목록"""
    from azrecon.registry import get_template, list_resource_types

    table = Table(title="리소스 타입", title_justify="left")
    table.add_column("Type", style="cyan")
    table.add_column("Namespace")
    table.add_column("Method")
    table.add_column("Path", overflow="fold")
    table.add_column("Description")

    for name in list_resource_types(namespace):
        template = get_template(name)
        table.add_row(name, template.namespace, template.method, template.path, template.description)
    console.print(table)


@cli.command("fetch")
@click.argument("resource_types", nargs=-1, required=True)
@click.option("-p", "--param", "path_params", multiple=True, help="경로 파라미터 key=value (다중 가능)")
@click.option("-q", "--query", "query_params", multiple=True, help="추가 쿼리 파라미터 key=value (다중 가능)")
@click.option("--skip-cache", is_flag=True, help="캐시를 건너뛰고 새로 조회")
@click.option("--compress", is_flag=True, default=None, help="캐시 페이로드 압축")
@click.option("--ttl", type=click.IntRange(min=0), default=None, help="캐시 TTL (분)")
@click.option("--timeout", type=click.FloatRange(min=0), default=None, help="전체 제한 시간 (초)")
@click.option("--report", "report_format", type=click.Choice(REPORT_FORMATS), default=None, help="조회 후 캐시 리포트")
@click.option("--report-dir", default=None, help="캐시 리포트 저장 디렉토리 (--report 형식, 기본 json)")
@click.option("-o", "--output", default=None, help="결과 JSON 저장 경로")
def fetch_cmd(
    resource_types: tuple[str, ...],
    path_params: tuple[str, ...],
    query_params: tuple[str, ...],
    skip_cache: bool,
    compress: bool | None,
    ttl: int | None,
    timeout: float | None,
    report_format: str | None,
    report_dir: str | None,
    output: str | None,
) -> None:
    """리소스 조회"""
    from azrecon.analytics import export_cache_report, get_cache_report
    from azrecon.cache import CacheStore
    from azrecon.config import ReconSettings
    from azrecon.parallel import CancelToken, RequestExecutor
    from azrecon.registry import build_descriptor

    paths = _parse_key_values(path_params, "--param")
    queries = _parse_key_values(query_params, "--query")

    try:
        settings = ReconSettings.from_env()
        descriptors = [build_descriptor(rt, params=queries or None, **paths) for rt in resource_types]

        overrides: dict = {"skip_cache": skip_cache}
        if compress is not None:
            overrides["compress"] = compress
        if ttl is not None:
            overrides["expiration_minutes"] = ttl
        options = settings.cache_options(**overrides)

        store = CacheStore(default_ttl_minutes=settings.cache_ttl_minutes, default_max_entries=settings.cache_max_size)
        executor = RequestExecutor(settings.to_context(), store, retry_config=settings.retry_config())
        cancel = CancelToken(timeout=timeout) if timeout else None

        if len(descriptors) == 1:
            results = {resource_types[0]: executor.fetch(descriptors[0], options, cancel)}
        else:
            with get_progress() as progress:
                tracker = ProgressTracker(progress)
                outcome = executor.fetch_many(descriptors, options, cancel=cancel, progress_tracker=tracker)
            results = {rt: o.data for rt, o in zip(resource_types, outcome.results) if o.success}
            if outcome.error_count:
                print_warning(outcome.get_error_summary())
    except AzReconError as e:
        print_error(format_error_for_user(e))
        raise SystemExit(1) from e

    payload = results if len(results) != 1 else next(iter(results.values()))
    if output:
        with open(output, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2, default=str)
        print_success(f"저장 완료: {output}")
    else:
        console.print_json(data=payload, default=str)

    logger.info(f"실행기 카운터: {executor.counters.snapshot()}")

    if report_format:
        rendered = get_cache_report(store, output_format=report_format, console=console)
        if report_format in ("json", "csv", "xml"):
            console.print(rendered, markup=False, highlight=False)

    if report_dir:
        path = export_cache_report(store, report_dir, output_format=report_format or "json")
        print_success(f"캐시 리포트 저장: {path}")


@cli.command("version")
def version_cmd() -> None:
    """버전 표시"""
    click.echo(f"azr {__version__}")
