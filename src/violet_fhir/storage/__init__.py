"""Storage backends for namespaces and resources."""

from violet_fhir.config import Settings
from violet_fhir.storage.base import ResourceStorage
from violet_fhir.storage.memory import InMemoryStorage
from violet_fhir.storage.predicates import (
    AnyOf,
    Contains,
    Equals,
    ILike,
    StoragePredicate,
)
from violet_fhir.storage.sqlalchemy_store import SQLAlchemyStorage


def build_storage(settings: Settings) -> ResourceStorage:
    """Construct the backend selected by ``settings.storage_backend``."""
    if settings.storage_backend == "memory":
        return InMemoryStorage()
    return SQLAlchemyStorage.from_settings(settings)


__all__ = [
    "AnyOf",
    "Contains",
    "Equals",
    "ILike",
    "InMemoryStorage",
    "ResourceStorage",
    "SQLAlchemyStorage",
    "StoragePredicate",
    "build_storage",
]
