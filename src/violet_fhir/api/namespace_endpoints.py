"""Administrative API for namespace definitions."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from violet_fhir.api.dependencies import (
    get_registry,
    principal_dependency,
    require_admin_role,
)
from violet_fhir.core.security import Principal
from violet_fhir.healthcare.protocol_adapter import parse_id
from violet_fhir.services.namespace_registry import NamespaceRegistry
from violet_fhir.utils.logging import audit_logger, get_logger

router = APIRouter(prefix="/api_namespaces", tags=["api-namespaces"])
logger = get_logger(__name__)

# Dependency injection
registry_dependency = Depends(get_registry)
admin_dependency = Depends(require_admin_role)


class NamespaceCreateRequest(BaseModel):
    """Namespace creation request."""

    name: str = Field(..., description="Unique resource-type name (e.g. Patient)")
    version: Optional[str] = Field(None, description="Definition version")
    properties: Dict[str, Any] = Field(
        default_factory=dict, description="Metadata bag (marker, schema...)"
    )


class NamespaceUpdateRequest(BaseModel):
    """Namespace update request; omitted fields are kept."""

    version: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None


@router.get("", summary="List namespaces")
def list_namespaces(
    principal: Principal = principal_dependency,
    registry: NamespaceRegistry = registry_dependency,
) -> List[Dict[str, Any]]:
    """All namespaces ordered by name."""
    return [namespace.to_dict() for namespace in registry.find_all()]


@router.get("/{namespace_id}", summary="Get namespace")
def get_namespace(
    namespace_id: str,
    principal: Principal = principal_dependency,
    registry: NamespaceRegistry = registry_dependency,
) -> Dict[str, Any]:
    """One namespace by id."""
    namespace = registry.get(parse_id(namespace_id, "ApiNamespace"))
    return namespace.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create namespace")
def create_namespace(
    body: NamespaceCreateRequest,
    principal: Principal = admin_dependency,
    registry: NamespaceRegistry = registry_dependency,
) -> Dict[str, Any]:
    """Create a namespace; names are unique."""
    namespace = registry.create(body.name, body.version, body.properties)
    audit_logger.log_data_change(
        principal.user_id, "ApiNamespace", str(namespace.id), "create", name=body.name
    )
    return namespace.to_dict()


@router.put("/{namespace_id}", summary="Update namespace")
def update_namespace(
    namespace_id: str,
    body: NamespaceUpdateRequest,
    principal: Principal = admin_dependency,
    registry: NamespaceRegistry = registry_dependency,
) -> Dict[str, Any]:
    """Replace a namespace's version and/or properties."""
    namespace = registry.update(
        parse_id(namespace_id, "ApiNamespace"), body.version, body.properties
    )
    audit_logger.log_data_change(
        principal.user_id, "ApiNamespace", namespace_id, "update"
    )
    return namespace.to_dict()


@router.delete(
    "/{namespace_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete namespace",
)
def delete_namespace(
    namespace_id: str,
    principal: Principal = admin_dependency,
    registry: NamespaceRegistry = registry_dependency,
) -> Response:
    """Delete a namespace and every resource it owns."""
    registry.destroy(parse_id(namespace_id, "ApiNamespace"))
    audit_logger.log_data_change(
        principal.user_id, "ApiNamespace", namespace_id, "delete"
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
