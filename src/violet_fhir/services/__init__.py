"""Business logic services for Violet FHIR."""

from violet_fhir.services.namespace_registry import NamespaceRegistry
from violet_fhir.services.resource_store import ResourceStore

__all__ = ["NamespaceRegistry", "ResourceStore"]
