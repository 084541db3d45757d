"""Database models and storage-independent records."""

from violet_fhir.models.api_namespace import ApiNamespace
from violet_fhir.models.api_resource import ApiResource
from violet_fhir.models.base import Base, BaseModel
from violet_fhir.models.records import Namespace, Resource

__all__ = [
    "ApiNamespace",
    "ApiResource",
    "Base",
    "BaseModel",
    "Namespace",
    "Resource",
]
