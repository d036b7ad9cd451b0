"""
azrecon/cli/console.py - Rich 콘솔 유틸리티

일관된 콘솔 출력을 위한 함수들
"""

from __future__ import annotations

import logging
import platform

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

# urllib3 연결 풀 노이즈 로그 제한
logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)


def get_console() -> Console:
    """Rich Console 인스턴스를 생성하고 반환합니다."""
    is_windows = platform.system().lower() == "windows"

    return Console(
        color_system="auto",
        highlight=True,
        soft_wrap=True,
        markup=True,
        emoji=not is_windows,
    )


# 전역 콘솔 인스턴스
console = get_console()


def setup_logging(verbose: int = 0) -> None:
    """루트 로거에 Rich 핸들러 설정

    Args:
        verbose: 0=WARNING, 1=INFO, 2 이상=DEBUG
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG

    handler = RichHandler(console=console, rich_tracebacks=True, show_path=False)
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler], force=True)


def get_progress() -> Progress:
    """Rich Progress 인스턴스를 생성하고 반환합니다."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


class ProgressTracker:
    """RequestExecutor.fetch_many 진행 표시 어댑터"""

    def __init__(self, progress: Progress, description: str = "조회 중"):
        self._progress = progress
        self._task: TaskID = progress.add_task(description, total=None)
        self.failed = 0

    def set_total(self, total: int) -> None:
        self._progress.update(self._task, total=total)

    def on_complete(self, success: bool) -> None:
        if not success:
            self.failed += 1
        self._progress.advance(self._task)


# =============================================================================
# 표준 출력 스타일
# =============================================================================

SYMBOL_SUCCESS = "✓"
SYMBOL_ERROR = "✗"
SYMBOL_WARNING = "!"


# 메시지의 [key] 등은 markup으로 해석되지 않도록 escape


def print_success(message: str) -> None:
    console.print(f"[green]{SYMBOL_SUCCESS} {escape(message)}[/green]")


def print_error(message: str) -> None:
    console.print(f"[red]{SYMBOL_ERROR} {escape(message)}[/red]")


def print_warning(message: str) -> None:
    console.print(f"[yellow]{SYMBOL_WARNING} {escape(message)}[/yellow]")
