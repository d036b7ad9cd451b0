"""
azrecon/cli - azr 명령줄 도구
"""

from .app import cli

__all__ = ["cli"]
