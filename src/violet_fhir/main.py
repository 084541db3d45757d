"""Main FastAPI application for Violet FHIR.

``create_app`` wires storage, the core components and the routers into one
application; components live on ``app.state`` and are shared by every request.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from violet_fhir.api import (
    fhir_endpoints,
    health,
    namespace_endpoints,
    resource_endpoints,
)
from violet_fhir.api.exceptions import register_exception_handlers
from violet_fhir.config import Settings, get_settings
from violet_fhir.healthcare.fhir_search import SearchTranslator
from violet_fhir.healthcare.protocol_adapter import ProtocolAdapter
from violet_fhir.healthcare.validation_engine import ValidationEngine
from violet_fhir.middleware import AuditMiddleware, RequestLoggingMiddleware
from violet_fhir.services.namespace_registry import NamespaceRegistry
from violet_fhir.services.resource_store import ResourceStore
from violet_fhir.storage import ResourceStorage, build_storage
from violet_fhir.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def provision_schema_namespaces(adapter: ProtocolAdapter) -> None:
    """Ensure every type with a packaged schema has its namespace."""
    for type_name in adapter.validator.supported_resource_types():
        adapter.resolve_or_provision_namespace(type_name)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        storage_backend=settings.storage_backend,
    )

    if settings.provision_schema_namespaces:
        provision_schema_namespaces(app.state.adapter)

    yield

    logger.info("application_stopping")
    app.state.storage.close()


def create_app(
    settings: Optional[Settings] = None, storage: Optional[ResourceStorage] = None
) -> FastAPI:
    """Build the application.

    Args:
        settings: Configuration, the process-wide settings by default
        storage: Storage backend, built from ``settings`` by default

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    setup_logging(settings)

    storage = storage or build_storage(settings)
    registry = NamespaceRegistry(storage)
    resource_store = ResourceStore(storage)
    validator = ValidationEngine.from_directory(settings.schema_directory)
    translator = SearchTranslator()
    adapter = ProtocolAdapter(registry, resource_store, validator, translator, settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="FHIR R4 REST server over a namespace/resource store",
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.storage = storage
    app.state.registry = registry
    app.state.resource_store = resource_store
    app.state.validator = validator
    app.state.translator = translator
    app.state.adapter = adapter

    # Add middleware
    app.add_middleware(AuditMiddleware, fhir_prefix=settings.fhir_prefix)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(namespace_endpoints.router, prefix=settings.api_v1_prefix)
    app.include_router(resource_endpoints.router, prefix=settings.api_v1_prefix)
    app.include_router(fhir_endpoints.router, prefix=settings.fhir_prefix)

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "endpoints": {
                "fhir": settings.fhir_prefix,
                "api": settings.api_v1_prefix,
                "health": "/health",
            },
        }

    return app


def main() -> None:
    """Run the server with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "violet_fhir.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
