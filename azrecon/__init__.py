"""
azrecon - Azure 인벤토리/Graph API 열거 도구

캐시 기반 요청 계층(CacheStore + RequestExecutor)과
캐시 분석 엔진(CacheAnalytics)을 제공합니다.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
