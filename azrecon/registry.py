"""
azrecon/registry.py - 리소스 타입별 엔드포인트 템플릿

리소스 타입 분기를 조건문 대신 데이터로 관리합니다.
경로의 {name} 자리표시자는 build_descriptor 호출 시 채워집니다.

Attributes:
    RESOURCE_TEMPLATES: 리소스 타입 -> EndpointTemplate 매핑

Example:
    descriptor = build_descriptor(
        "storage_account_keys",
        subscription_id=sub_id,
        resource_group="rg-prod",
        name="stprod01",
    )
    keys = executor.fetch(descriptor)
"""

from __future__ import annotations

import string
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from azrecon.exceptions import ConfigError, UnknownResourceTypeError
from azrecon.parallel.types import RequestDescriptor


@dataclass(frozen=True)
class EndpointTemplate:
    """엔드포인트 템플릿

    Attributes:
        namespace: API 패밀리 ("arm", "graph")
        path: 상대 경로 템플릿 ({subscription_id} 등)
        method: HTTP 메서드
        api_version: ARM api-version 쿼리 값 (Graph는 None)
        paginate: 목록 API 여부
        batchable: 배치 호출로 묶을 수 있는지 여부
        description: 설명
    """

    namespace: str
    path: str
    method: str = "GET"
    api_version: str | None = None
    paginate: bool = False
    batchable: bool = False
    description: str = ""

    @property
    def path_params(self) -> list[str]:
        """경로 자리표시자 이름 (등장 순서)"""
        return [name for _, name, _, _ in string.Formatter().parse(self.path) if name]


_SUB = "subscriptions/{subscription_id}"
_RG = _SUB + "/resourceGroups/{resource_group}"

RESOURCE_TEMPLATES: dict[str, EndpointTemplate] = {
    # =========================================================================
    # ARM - 구독 / 권한
    # =========================================================================
    "subscriptions": EndpointTemplate(
        "arm", "subscriptions", api_version="2022-12-01", paginate=True, description="접근 가능한 구독 목록"
    ),
    "resource_groups": EndpointTemplate(
        "arm", _SUB + "/resourcegroups", api_version="2021-04-01", paginate=True, description="리소스 그룹 목록"
    ),
    "role_assignments": EndpointTemplate(
        "arm",
        _SUB + "/providers/Microsoft.Authorization/roleAssignments",
        api_version="2022-04-01",
        paginate=True,
        description="구독 범위 역할 할당",
    ),
    # =========================================================================
    # ARM - 스토리지
    # =========================================================================
    "storage_accounts": EndpointTemplate(
        "arm",
        _SUB + "/providers/Microsoft.Storage/storageAccounts",
        api_version="2023-01-01",
        paginate=True,
        description="스토리지 계정 목록",
    ),
    "storage_account_keys": EndpointTemplate(
        "arm",
        _RG + "/providers/Microsoft.Storage/storageAccounts/{name}/listKeys",
        method="POST",
        api_version="2023-01-01",
        description="스토리지 계정 액세스 키",
    ),
    # =========================================================================
    # ARM - Key Vault
    # =========================================================================
    "key_vaults": EndpointTemplate(
        "arm",
        _SUB + "/providers/Microsoft.KeyVault/vaults",
        api_version="2023-07-01",
        paginate=True,
        description="Key Vault 목록",
    ),
    "key_vault_secrets": EndpointTemplate(
        "arm",
        _RG + "/providers/Microsoft.KeyVault/vaults/{name}/secrets",
        api_version="2023-07-01",
        paginate=True,
        description="Key Vault 비밀 메타데이터 목록",
    ),
    # =========================================================================
    # ARM - App Service / 기타 자격 증명
    # =========================================================================
    "web_apps": EndpointTemplate(
        "arm",
        _SUB + "/providers/Microsoft.Web/sites",
        api_version="2022-03-01",
        paginate=True,
        description="App Service 웹 앱 목록",
    ),
    "web_app_publishing_credentials": EndpointTemplate(
        "arm",
        _RG + "/providers/Microsoft.Web/sites/{name}/config/publishingcredentials/list",
        method="POST",
        api_version="2022-03-01",
        description="웹 앱 게시 자격 증명",
    ),
    "web_app_settings": EndpointTemplate(
        "arm",
        _RG + "/providers/Microsoft.Web/sites/{name}/config/appsettings/list",
        method="POST",
        api_version="2022-03-01",
        description="웹 앱 애플리케이션 설정",
    ),
    "container_registry_credentials": EndpointTemplate(
        "arm",
        _RG + "/providers/Microsoft.ContainerRegistry/registries/{name}/listCredentials",
        method="POST",
        api_version="2023-07-01",
        description="컨테이너 레지스트리 관리자 자격 증명",
    ),
    "automation_accounts": EndpointTemplate(
        "arm",
        _SUB + "/providers/Microsoft.Automation/automationAccounts",
        api_version="2023-11-01",
        paginate=True,
        description="Automation 계정 목록",
    ),
    # =========================================================================
    # Microsoft Graph
    # =========================================================================
    "users": EndpointTemplate("graph", "v1.0/users", paginate=True, description="디렉터리 사용자 목록"),
    "user": EndpointTemplate("graph", "v1.0/users/{user_id}", batchable=True, description="사용자 단건"),
    "groups": EndpointTemplate("graph", "v1.0/groups", paginate=True, description="그룹 목록"),
    "applications": EndpointTemplate("graph", "v1.0/applications", paginate=True, description="앱 등록 목록"),
    "application": EndpointTemplate(
        "graph", "v1.0/applications/{application_id}", batchable=True, description="앱 등록 단건"
    ),
    "service_principals": EndpointTemplate(
        "graph", "v1.0/servicePrincipals", paginate=True, description="서비스 주체 목록"
    ),
    "directory_roles": EndpointTemplate(
        "graph", "v1.0/directoryRoles", paginate=True, description="활성화된 디렉터리 역할"
    ),
}


def get_template(resource_type: str) -> EndpointTemplate:
    """리소스 타입 템플릿 조회

    Raises:
        UnknownResourceTypeError: 등록되지 않은 리소스 타입
    """
    try:
        return RESOURCE_TEMPLATES[resource_type]
    except KeyError:
        raise UnknownResourceTypeError(resource_type) from None


def list_resource_types(namespace: str | None = None) -> list[str]:
    """등록된 리소스 타입 목록 (정렬)"""
    return sorted(name for name, t in RESOURCE_TEMPLATES.items() if namespace is None or t.namespace == namespace)


def build_descriptor(
    resource_type: str,
    params: dict[str, Any] | None = None,
    correlation_id: str | None = None,
    **path_params: str,
) -> RequestDescriptor:
    """리소스 타입과 경로 파라미터로 RequestDescriptor 생성

    Args:
        resource_type: 등록된 리소스 타입
        params: 추가 쿼리 파라미터 ($top, $select 등)
        correlation_id: 배치 하위 요청 식별자
        **path_params: 경로 자리표시자 값

    Raises:
        UnknownResourceTypeError: 등록되지 않은 리소스 타입
        ConfigError: 필수 경로 파라미터 누락
    """
    template = get_template(resource_type)

    missing = [name for name in template.path_params if not path_params.get(name)]
    if missing:
        raise ConfigError("path_params", f"'{resource_type}'에 필요한 파라미터 누락: {', '.join(missing)}")

    endpoint = template.path.format_map({k: quote(str(v), safe="") for k, v in path_params.items()})

    query: dict[str, Any] = {}
    if template.api_version:
        query["api-version"] = template.api_version
    if params:
        query.update(params)

    return RequestDescriptor(
        endpoint=endpoint,
        method=template.method,
        params=query,
        namespace=template.namespace,
        batchable=template.batchable,
        paginate=template.paginate,
        correlation_id=correlation_id,
    )
