"""FHIR REST endpoints.

Type-level and instance-level interactions over the namespace/resource core:

    GET    /fhir/metadata
    GET    /fhir/{type}?params
    GET    /fhir/{type}/{id}
    POST   /fhir/{type}
    PUT    /fhir/{type}/{id}
    DELETE /fhir/{type}/{id}
"""

from typing import Any, Dict, List, Union

from fastapi import APIRouter, Body, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from violet_fhir.api.dependencies import (
    get_adapter,
    principal_dependency,
    require_admin_role,
    require_write_role,
)
from violet_fhir.core.security import Principal
from violet_fhir.healthcare.protocol_adapter import ProtocolAdapter
from violet_fhir.utils.logging import audit_logger, get_logger

router = APIRouter(tags=["fhir"])
logger = get_logger(__name__)

FHIR_MEDIA_TYPE = "application/fhir+json"

# Dependency injection
adapter_dependency = Depends(get_adapter)
write_dependency = Depends(require_write_role)
admin_dependency = Depends(require_admin_role)
wire_body = Body(..., media_type=FHIR_MEDIA_TYPE)


def fhir_response(
    content: Dict[str, Any], status_code: int = status.HTTP_200_OK, **headers: str
) -> JSONResponse:
    """Wrap a protocol document in a FHIR JSON response."""
    return JSONResponse(
        content=content,
        status_code=status_code,
        media_type=FHIR_MEDIA_TYPE,
        headers=headers or None,
    )


def base_url_for(request: Request) -> str:
    """Absolute base of the protocol paths, used in ``fullUrl``."""
    prefix = request.app.state.settings.fhir_prefix
    return str(request.base_url).rstrip("/") + prefix


def query_parameters(request: Request) -> Dict[str, Union[str, List[str]]]:
    """Query string as a mapping; repeated names keep every value."""
    params: Dict[str, Union[str, List[str]]] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        params[key] = values if len(values) > 1 else values[0]
    return params


@router.get("/metadata", summary="Capability statement")
def capability_statement(
    request: Request, adapter: ProtocolAdapter = adapter_dependency
) -> JSONResponse:
    """Describe the server's supported resource types and search parameters."""
    return fhir_response(adapter.build_capability_document(base_url_for(request)))


@router.get("/{resource_type}", summary="Search resources")
def search_resources(
    resource_type: str,
    request: Request,
    principal: Principal = principal_dependency,
    adapter: ProtocolAdapter = adapter_dependency,
) -> JSONResponse:
    """Search resources of ``resource_type`` and return a searchset bundle."""
    bundle = adapter.search(
        resource_type, query_parameters(request), base_url_for(request)
    )
    return fhir_response(bundle)


@router.get("/{resource_type}/{resource_id}", summary="Read resource")
def read_resource(
    resource_type: str,
    resource_id: str,
    principal: Principal = principal_dependency,
    adapter: ProtocolAdapter = adapter_dependency,
) -> JSONResponse:
    """Read one resource."""
    return fhir_response(adapter.read(resource_type, resource_id))


@router.post("/{resource_type}", summary="Create resource")
def create_resource(
    resource_type: str,
    request: Request,
    wire_record: Any = wire_body,
    principal: Principal = write_dependency,
    adapter: ProtocolAdapter = adapter_dependency,
) -> JSONResponse:
    """Create a resource; the type's namespace is provisioned on first use."""
    wire = adapter.create(resource_type, wire_record)
    audit_logger.log_data_change(
        principal.user_id, resource_type, wire["id"], "create"
    )
    location = f"{request.app.state.settings.fhir_prefix}/{resource_type}/{wire['id']}"
    return fhir_response(wire, status.HTTP_201_CREATED, Location=location)


@router.put("/{resource_type}/{resource_id}", summary="Update resource")
def update_resource(
    resource_type: str,
    resource_id: str,
    wire_record: Any = wire_body,
    principal: Principal = write_dependency,
    adapter: ProtocolAdapter = adapter_dependency,
) -> JSONResponse:
    """Replace a resource's content with the request body."""
    wire = adapter.update(resource_type, resource_id, wire_record)
    audit_logger.log_data_change(principal.user_id, resource_type, resource_id, "update")
    return fhir_response(wire)


@router.delete(
    "/{resource_type}/{resource_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete resource",
)
def delete_resource(
    resource_type: str,
    resource_id: str,
    principal: Principal = admin_dependency,
    adapter: ProtocolAdapter = adapter_dependency,
) -> Response:
    """Delete a resource."""
    adapter.delete(resource_type, resource_id)
    audit_logger.log_data_change(principal.user_id, resource_type, resource_id, "delete")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
