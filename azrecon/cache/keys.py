"""
azrecon/cache/keys.py - 캐시 키 생성

요청 식별자와 파라미터 집합으로부터 결정적(deterministic)이고
파라미터 순서에 무관한 캐시 키를 만듭니다.

키 형식:
    {base_identifier}?{name1}={value1}&{name2}={value2}   (readable, 기본)
    {base_identifier}#{sha256[:32]}                          (hashed=True)

값은 JSON 표현으로 정규화되므로 1과 "1", 중첩 딕셔너리의 키 순서 등이
일관되게 처리됩니다.

Example:
    >>> build_key("arm:/subscriptions", {"api-version": "2022-12-01", "$top": 10})
    'arm:/subscriptions?$top=10&api-version="2022-12-01"'
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from azrecon.parallel.types import RequestDescriptor

PARAM_DELIMITER = "&"
QUERY_DELIMITER = "?"
HASH_DELIMITER = "#"

# 요청 본문을 파라미터 집합에 포함할 때 사용하는 예약 이름
BODY_PARAM = "~body"


def _canonical_value(value: Any) -> str:
    """파라미터 값을 정규화된 문자열로 변환"""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def canonical_params(params: Mapping[str, Any] | None) -> str:
    """파라미터 집합을 이름순 정렬된 name=value 문자열로 변환

    Args:
        params: 파라미터 딕셔너리 (None 가능)

    Returns:
        "a=1&b=\"x\"" 형식의 문자열 (파라미터 없으면 빈 문자열)
    """
    if not params:
        return ""
    return PARAM_DELIMITER.join(f"{name}={_canonical_value(params[name])}" for name in sorted(params))


def build_key(
    base_identifier: str,
    params: Mapping[str, Any] | None = None,
    hashed: bool = False,
) -> str:
    """캐시 키 생성

    동일한 식별자와 동일한 파라미터 집합은 삽입 순서와 관계없이 같은 키를 만들고,
    파라미터 값이 하나라도 다르면 다른 키가 됩니다.

    Args:
        base_identifier: 요청 식별자 (예: "arm:GET /subscriptions")
        params: 파라미터 딕셔너리
        hashed: True면 파라미터 부분을 SHA256 해시로 축약

    Returns:
        캐시 키 문자열
    """
    query = canonical_params(params)

    if hashed:
        digest = hashlib.sha256(query.encode("utf-8")).hexdigest()[:32]
        return f"{base_identifier}{HASH_DELIMITER}{digest}"

    if not query:
        return base_identifier
    return f"{base_identifier}{QUERY_DELIMITER}{query}"


def descriptor_key(
    descriptor: RequestDescriptor,
    batch_mode: bool = False,
    hashed: bool = False,
) -> str:
    """요청 명세의 캐시 식별 키 생성

    식별 요소는 (엔드포인트, 정규화된 파라미터 집합, 배치 모드 여부)이며,
    GET이 아닌 메서드와 페이지네이션 누적 여부도 식별자에 포함됩니다.

    Args:
        descriptor: 요청 명세
        batch_mode: 배치 호출의 하위 요청으로 조회하는지 여부
        hashed: 파라미터 부분 해시 여부

    Returns:
        캐시 키 문자열
    """
    method = descriptor.method.upper()
    base = descriptor.endpoint if method == "GET" else f"{method} {descriptor.endpoint}"

    flags = []
    if batch_mode:
        flags.append("batch")
    if descriptor.paginate:
        flags.append("paged")
    if flags:
        base = f"{base}|{','.join(flags)}"

    params: dict[str, Any] = dict(descriptor.params)
    if descriptor.body is not None:
        params[BODY_PARAM] = descriptor.body

    return build_key(base, params, hashed=hashed)
