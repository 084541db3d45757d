"""Test configuration for the Violet FHIR project.

Provides storage backends, the core components wired over them, a configured
application with a test client, and bearer tokens for each role.
"""

import os
from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from violet_fhir.config import Settings
from violet_fhir.core.security import create_access_token
from violet_fhir.healthcare.fhir_search import SearchTranslator
from violet_fhir.healthcare.protocol_adapter import ProtocolAdapter
from violet_fhir.healthcare.validation_engine import ValidationEngine
from violet_fhir.main import create_app
from violet_fhir.services.namespace_registry import NamespaceRegistry
from violet_fhir.services.resource_store import ResourceStore
from violet_fhir.storage import InMemoryStorage, ResourceStorage, SQLAlchemyStorage

# Set testing environment BEFORE any settings are built
os.environ["TESTING"] = "true"

TEST_JWT_SECRET = "violet-fhir-test-signing-key-0123456789abcdef"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "fhir_compliance: mark test as checking FHIR wire behaviour"
    )
    config.addinivalue_line(
        "markers", "concurrency: mark test as exercising concurrent writers"
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and any local .env file."""
    return Settings(
        _env_file=None,
        environment="testing",
        testing=True,
        storage_backend="memory",
        database_url=f"sqlite:///{tmp_path / 'violet_fhir_test.db'}",
        jwt_secret_key=TEST_JWT_SECRET,
        log_level="WARNING",
    )


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, settings) -> Iterator[ResourceStorage]:
    """Each storage backend in turn."""
    if request.param == "memory":
        backend: ResourceStorage = InMemoryStorage()
    else:
        backend = SQLAlchemyStorage.from_settings(settings)
    yield backend
    backend.close()


@pytest.fixture
def registry(storage) -> NamespaceRegistry:
    """Namespace registry over the parametrized backend."""
    return NamespaceRegistry(storage)


@pytest.fixture
def store(storage) -> ResourceStore:
    """Resource store sharing the registry's backend."""
    return ResourceStore(storage)


@pytest.fixture
def validator() -> ValidationEngine:
    """Validation engine with the packaged schema table."""
    return ValidationEngine.from_directory()


@pytest.fixture
def translator() -> SearchTranslator:
    """Search translator with the default parameter table."""
    return SearchTranslator()


@pytest.fixture
def adapter(registry, store, validator, translator, settings) -> ProtocolAdapter:
    """Protocol adapter wired over the parametrized backend."""
    return ProtocolAdapter(registry, store, validator, translator, settings)


@pytest.fixture
def app(settings, storage):
    """Application over the parametrized backend."""
    return create_app(settings, storage)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    """Test client; entering it runs the application lifespan."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def tokens(settings) -> Dict[str, str]:
    """Bearer tokens for each role."""
    return {
        role: create_access_token(settings, f"{role}-user", role)
        for role in ("patient", "practitioner", "admin")
    }


@pytest.fixture
def auth_headers(tokens):
    """Build an Authorization header for a role."""

    def _headers(role: str = "practitioner") -> Dict[str, str]:
        return {"Authorization": f"Bearer {tokens[role]}"}

    return _headers


@pytest.fixture
def patient_payload() -> Dict:
    """A Patient resource as a client sends it."""
    return {
        "resourceType": "Patient",
        "identifier": [{"system": "urn:mrn", "value": "P1"}],
        "name": [{"use": "official", "family": "Doe", "given": ["Jane"]}],
        "gender": "female",
        "birthDate": "1980-01-15",
    }
