"""CRM connectors.

A connector exposes one company's CRM through a uniform interface:

  fetch_resource(resource_type, resource_id | None, project_id?) -> ConnectorResult
  push_resource(resource_type, operation_type, resource_id, data, project_id?) -> dict

Provider-specific connectors register a factory under their ``provider_name``;
companies without an active CRM integration use the local connector, which
reads and writes this database's own tables.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import BaseModel

from app.core.logging import get_logger
from app.core.schemas_tools import NotFoundError, UpstreamError, ValidationFailedError
from app.db import crm_resources
from app.db.integrations import get_active_crm_integration, get_integration

logger = get_logger(__name__)

LOCAL_PROVIDER = "local"


class ConnectorResult(BaseModel):
    """Normalized fetch result."""

    data: Any = None
    raw: Any = None
    provider: str = LOCAL_PROVIDER


class CRMConnector(ABC):
    """Uniform per-provider CRM adapter."""

    provider_name: str = ""

    def __init__(self, company_id: str, integration: dict[str, Any] | None = None):
        self.company_id = company_id
        self.integration = integration or {}

    @abstractmethod
    async def fetch_resource(
        self,
        resource_type: str,
        resource_id: str | None,
        project_id: str | None = None,
        limit: int = 20,
    ) -> ConnectorResult:
        """Read one resource (by id) or a list of resources."""

    @abstractmethod
    async def push_resource(
        self,
        resource_type: str,
        operation_type: str,
        resource_id: str | None,
        data: dict[str, Any],
        project_id: str | None = None,
    ) -> dict[str, Any]:
        """Create, update or delete one resource."""


class LocalConnector(CRMConnector):
    """Connector over this database's own project/contact/note/task tables."""

    provider_name = LOCAL_PROVIDER

    async def fetch_resource(
        self,
        resource_type: str,
        resource_id: str | None,
        project_id: str | None = None,
        limit: int = 20,
    ) -> ConnectorResult:
        if resource_type not in crm_resources.RESOURCE_TABLES:
            raise ValidationFailedError(f"Unsupported resource type: {resource_type}")

        if resource_id:
            row = crm_resources.get_resource(resource_type, resource_id, self.company_id)
            if row is None:
                raise NotFoundError(f"{resource_type} {resource_id} not found")
            if project_id and resource_type in ("note", "task", "activity"):
                if str(row.get("project_id")) != str(project_id):
                    raise NotFoundError(f"{resource_type} {resource_id} not found")
            return ConnectorResult(data=row)

        rows = crm_resources.list_resources(resource_type, self.company_id, project_id, limit)
        return ConnectorResult(data=rows)

    async def push_resource(
        self,
        resource_type: str,
        operation_type: str,
        resource_id: str | None,
        data: dict[str, Any],
        project_id: str | None = None,
    ) -> dict[str, Any]:
        if operation_type == "create":
            row = crm_resources.create_resource(resource_type, self.company_id, data, project_id)
            return {"operation": "create", "resource_id": row["id"], "data": row}

        if not resource_id:
            raise ValidationFailedError(f"resource_id is required for {operation_type} operations")

        if operation_type == "update":
            row = crm_resources.update_resource(resource_type, resource_id, self.company_id, data)
            if row is None:
                raise NotFoundError(f"{resource_type} {resource_id} not found")
            return {"operation": "update", "resource_id": resource_id, "data": row}

        if operation_type == "delete":
            if not crm_resources.delete_resource(resource_type, resource_id, self.company_id):
                raise NotFoundError(f"{resource_type} {resource_id} not found")
            return {"operation": "delete", "resource_id": resource_id}

        raise ValidationFailedError(f"Unsupported operation_type: {operation_type}")


ConnectorFactory = Callable[[str, dict[str, Any]], CRMConnector]

_CONNECTOR_FACTORIES: dict[str, ConnectorFactory] = {}


def register_connector(provider_name: str, factory: ConnectorFactory) -> None:
    """Register a connector factory for a provider name."""
    _CONNECTOR_FACTORIES[provider_name.lower()] = factory


def _build(company_id: str, integration: dict[str, Any] | None) -> CRMConnector:
    if not integration:
        return LocalConnector(company_id)

    provider = str(integration.get("provider_name") or "").lower()
    factory = _CONNECTOR_FACTORIES.get(provider)
    if factory is None:
        raise UpstreamError(f"Unsupported CRM provider: {integration.get('provider_name')}")
    return factory(company_id, integration)


def get_connector(company_id: str) -> CRMConnector:
    """Connector for the company's active CRM integration (local when none)."""
    return _build(company_id, get_active_crm_integration(company_id))


def get_connector_for_integration(company_id: str, integration_id: str | None) -> CRMConnector:
    """Connector for a specific integration, e.g. the one a queued job was created for."""
    if not integration_id:
        return get_connector(company_id)

    integration = get_integration(integration_id)
    if not integration or integration.get("company_id") != company_id:
        raise NotFoundError(f"Integration {integration_id} not found")
    return _build(company_id, integration)


register_connector(LOCAL_PROVIDER, lambda company_id, integration: LocalConnector(company_id, integration))
