"""Storage engine interface consumed by the registry and the resource store."""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from violet_fhir.models.records import Namespace, Resource
from violet_fhir.storage.predicates import StoragePredicate


class ResourceStorage(ABC):
    """Query interface over namespaces and their property-bag resources.

    Implementations raise ``UniqueViolationError`` for uniqueness failures and
    ``StorageError`` for every other engine fault. Lookups of missing rows
    return ``None`` (or ``False`` for deletes) rather than raising.
    """

    # Namespaces

    @abstractmethod
    def list_namespaces(self) -> List[Namespace]:
        """All namespaces ordered by name."""

    @abstractmethod
    def get_namespace(self, namespace_id: uuid.UUID) -> Optional[Namespace]:
        """Namespace by id."""

    @abstractmethod
    def get_namespace_by_name(self, name: str) -> Optional[Namespace]:
        """Namespace by unique name."""

    @abstractmethod
    def insert_namespace(
        self, name: str, version: str, properties: Dict[str, Any]
    ) -> Namespace:
        """Insert a namespace; ``UniqueViolationError`` if the name is taken."""

    @abstractmethod
    def insert_namespace_or_get(
        self, name: str, version: str, properties: Dict[str, Any]
    ) -> Namespace:
        """Insert a namespace, or return the existing row holding ``name``.

        Must be atomic: concurrent callers with the same name all receive the
        same row.
        """

    @abstractmethod
    def update_namespace(
        self, namespace_id: uuid.UUID, version: str, properties: Dict[str, Any]
    ) -> Optional[Namespace]:
        """Overwrite version and properties."""

    @abstractmethod
    def delete_namespace(self, namespace_id: uuid.UUID) -> bool:
        """Delete a namespace and every resource it owns."""

    # Resources

    @abstractmethod
    def list_resources(
        self,
        namespace_id: uuid.UUID,
        predicates: Sequence[StoragePredicate] = (),
        newest_first: bool = True,
    ) -> List[Resource]:
        """Resources of a namespace matching all predicates, by ``created_at``."""

    @abstractmethod
    def count_resources(self, namespace_id: uuid.UUID) -> int:
        """Number of resources owned by a namespace."""

    @abstractmethod
    def get_resource(self, resource_id: uuid.UUID) -> Optional[Resource]:
        """Resource by id."""

    @abstractmethod
    def insert_resource(
        self, namespace_id: uuid.UUID, properties: Dict[str, Any]
    ) -> Resource:
        """Insert a resource under an existing namespace."""

    @abstractmethod
    def update_resource(
        self, resource_id: uuid.UUID, properties: Dict[str, Any]
    ) -> Optional[Resource]:
        """Overwrite a resource's properties and bump ``updated_at``."""

    @abstractmethod
    def merge_resource(
        self, resource_id: uuid.UUID, patch: Dict[str, Any]
    ) -> Optional[Resource]:
        """Shallow-merge ``patch`` into the stored properties in one atomic step.

        Keys in ``patch`` overwrite, keys absent from it are kept. Concurrent
        merges of disjoint keys all survive.
        """

    @abstractmethod
    def delete_resource(self, resource_id: uuid.UUID) -> bool:
        """Delete one resource."""

    def close(self) -> None:
        """Release engine resources."""
