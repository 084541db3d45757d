"""Administrative API for resources stored under namespaces."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field

from violet_fhir.api.dependencies import (
    get_registry,
    get_resource_store,
    get_translator,
    principal_dependency,
    require_admin_role,
    require_write_role,
)
from violet_fhir.api.fhir_endpoints import query_parameters
from violet_fhir.core.exceptions import NotFoundError, ValidationError
from violet_fhir.core.security import Principal
from violet_fhir.healthcare.fhir_search import SearchTranslator
from violet_fhir.healthcare.protocol_adapter import parse_id
from violet_fhir.services.namespace_registry import NamespaceRegistry
from violet_fhir.services.resource_store import ResourceStore
from violet_fhir.utils.logging import audit_logger, get_logger

router = APIRouter(prefix="/api_resources", tags=["api-resources"])
logger = get_logger(__name__)

# Dependency injection
registry_dependency = Depends(get_registry)
store_dependency = Depends(get_resource_store)
translator_dependency = Depends(get_translator)
write_dependency = Depends(require_write_role)
admin_dependency = Depends(require_admin_role)


class ResourceCreateRequest(BaseModel):
    """Resource creation request."""

    namespace_id: str = Field(..., description="Owning namespace id")
    properties: Dict[str, Any] = Field(..., description="Resource payload")


class ResourceUpdateRequest(BaseModel):
    """Resource update request; properties are merged into the stored bag."""

    properties: Dict[str, Any] = Field(default_factory=dict)


@router.get("", summary="List resources")
def list_resources(
    request: Request,
    principal: Principal = principal_dependency,
    registry: NamespaceRegistry = registry_dependency,
    store: ResourceStore = store_dependency,
    translator: SearchTranslator = translator_dependency,
) -> List[Dict[str, Any]]:
    """Resources of one namespace, newest first.

    Query parameters other than ``namespace_id`` are search parameters of
    the namespace's type.
    """
    params = query_parameters(request)
    raw_namespace_id = params.pop("namespace_id", None)
    if not raw_namespace_id:
        raise ValidationError("namespace_id query parameter is required")
    if isinstance(raw_namespace_id, list):
        raw_namespace_id = raw_namespace_id[0]

    namespace = registry.find_by_id(parse_id(raw_namespace_id, "ApiNamespace"))
    if namespace is None:
        return []

    filters = translator.translate(params, namespace.name)
    return [resource.to_dict() for resource in store.find_all(namespace.id, filters)]


@router.get("/{resource_id}", summary="Get resource")
def get_resource(
    resource_id: str,
    principal: Principal = principal_dependency,
    store: ResourceStore = store_dependency,
) -> Dict[str, Any]:
    """One resource by id."""
    resource = store.find_by_id(parse_id(resource_id, "ApiResource"))
    if resource is None:
        raise NotFoundError("API Resource not found")
    return resource.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create resource")
def create_resource(
    body: ResourceCreateRequest,
    principal: Principal = write_dependency,
    store: ResourceStore = store_dependency,
) -> Dict[str, Any]:
    """Store a resource under an existing namespace."""
    try:
        namespace_id = parse_id(body.namespace_id, "ApiNamespace")
    except NotFoundError as e:
        raise NotFoundError("API Namespace not found") from e

    resource = store.create(namespace_id, body.properties)
    audit_logger.log_data_change(
        principal.user_id,
        "ApiResource",
        str(resource.id),
        "create",
        namespace_id=str(namespace_id),
    )
    return resource.to_dict()


@router.put("/{resource_id}", summary="Update resource")
def update_resource(
    resource_id: str,
    body: ResourceUpdateRequest,
    principal: Principal = write_dependency,
    store: ResourceStore = store_dependency,
) -> Dict[str, Any]:
    """Merge ``properties`` into the stored resource."""
    resource = store.update(parse_id(resource_id, "ApiResource"), body.properties)
    audit_logger.log_data_change(principal.user_id, "ApiResource", resource_id, "update")
    return resource.to_dict()


@router.delete(
    "/{resource_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete resource",
)
def delete_resource(
    resource_id: str,
    principal: Principal = admin_dependency,
    store: ResourceStore = store_dependency,
) -> Response:
    """Delete a resource."""
    store.destroy(parse_id(resource_id, "ApiResource"))
    audit_logger.log_data_change(principal.user_id, "ApiResource", resource_id, "delete")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
