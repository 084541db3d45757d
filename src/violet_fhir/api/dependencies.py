"""FastAPI dependencies: components from application state and role gates."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from violet_fhir.config import Settings
from violet_fhir.core.exceptions import ForbiddenError, UnauthorizedError
from violet_fhir.core.security import Principal, decode_access_token
from violet_fhir.healthcare.protocol_adapter import ProtocolAdapter
from violet_fhir.healthcare.fhir_search import SearchTranslator
from violet_fhir.services.namespace_registry import NamespaceRegistry
from violet_fhir.services.resource_store import ResourceStore

security = HTTPBearer(auto_error=False)
security_dependency = Depends(security)


def get_settings_from_app(request: Request) -> Settings:
    """Settings the application was built with."""
    settings: Settings = request.app.state.settings
    return settings


def get_registry(request: Request) -> NamespaceRegistry:
    """Namespace registry of the running application."""
    registry: NamespaceRegistry = request.app.state.registry
    return registry


def get_resource_store(request: Request) -> ResourceStore:
    """Resource store of the running application."""
    store: ResourceStore = request.app.state.resource_store
    return store


def get_translator(request: Request) -> SearchTranslator:
    """Search translator of the running application."""
    translator: SearchTranslator = request.app.state.translator
    return translator


def get_adapter(request: Request) -> ProtocolAdapter:
    """Protocol adapter of the running application."""
    adapter: ProtocolAdapter = request.app.state.adapter
    return adapter


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = security_dependency,
) -> Principal:
    """Decode the bearer token into the calling principal."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("No authentication token provided")

    principal = decode_access_token(
        get_settings_from_app(request), credentials.credentials
    )
    request.state.principal = principal
    return principal


principal_dependency = Depends(get_current_principal)


def require_write_role(
    request: Request, principal: Principal = principal_dependency
) -> Principal:
    """Allow roles that may create and update resources."""
    if principal.role not in get_settings_from_app(request).write_roles:
        raise ForbiddenError("Insufficient permissions")
    return principal


def require_admin_role(
    request: Request, principal: Principal = principal_dependency
) -> Principal:
    """Allow administrative roles only."""
    if principal.role not in get_settings_from_app(request).admin_roles:
        raise ForbiddenError("Insufficient permissions")
    return principal
