"""In-memory storage backend.

Keeps rows in dictionaries behind one lock. Used by the test-suite and for
throwaway local runs (``STORAGE_BACKEND=memory``).
"""

import copy
import threading
import uuid
from typing import Any, Dict, List, Optional, Sequence

from violet_fhir.core.exceptions import StorageError, UniqueViolationError
from violet_fhir.models.base import utcnow
from violet_fhir.models.records import Namespace, Resource
from violet_fhir.storage.base import ResourceStorage
from violet_fhir.storage.predicates import StoragePredicate, matches_all


class InMemoryStorage(ResourceStorage):
    """Thread-safe dictionary-backed storage."""

    def __init__(self) -> None:
        """Initialize empty tables."""
        self._lock = threading.RLock()
        self._namespaces: Dict[uuid.UUID, Namespace] = {}
        self._resources: Dict[uuid.UUID, Resource] = {}

    def list_namespaces(self) -> List[Namespace]:
        with self._lock:
            rows = sorted(self._namespaces.values(), key=lambda ns: ns.name)
            return [copy.deepcopy(ns) for ns in rows]

    def get_namespace(self, namespace_id: uuid.UUID) -> Optional[Namespace]:
        with self._lock:
            namespace = self._namespaces.get(namespace_id)
            return copy.deepcopy(namespace) if namespace else None

    def get_namespace_by_name(self, name: str) -> Optional[Namespace]:
        with self._lock:
            return copy.deepcopy(self._find_by_name(name))

    def insert_namespace(
        self, name: str, version: str, properties: Dict[str, Any]
    ) -> Namespace:
        with self._lock:
            if self._find_by_name(name) is not None:
                raise UniqueViolationError(f"Namespace name '{name}' already exists")
            return copy.deepcopy(self._insert_namespace(name, version, properties))

    def insert_namespace_or_get(
        self, name: str, version: str, properties: Dict[str, Any]
    ) -> Namespace:
        with self._lock:
            existing = self._find_by_name(name)
            if existing is None:
                existing = self._insert_namespace(name, version, properties)
            return copy.deepcopy(existing)

    def update_namespace(
        self, namespace_id: uuid.UUID, version: str, properties: Dict[str, Any]
    ) -> Optional[Namespace]:
        with self._lock:
            namespace = self._namespaces.get(namespace_id)
            if namespace is None:
                return None
            namespace.version = version
            namespace.properties = copy.deepcopy(properties)
            namespace.updated_at = utcnow()
            return copy.deepcopy(namespace)

    def delete_namespace(self, namespace_id: uuid.UUID) -> bool:
        with self._lock:
            if self._namespaces.pop(namespace_id, None) is None:
                return False
            owned = [
                rid
                for rid, resource in self._resources.items()
                if resource.namespace_id == namespace_id
            ]
            for resource_id in owned:
                del self._resources[resource_id]
            return True

    def list_resources(
        self,
        namespace_id: uuid.UUID,
        predicates: Sequence[StoragePredicate] = (),
        newest_first: bool = True,
    ) -> List[Resource]:
        with self._lock:
            rows = [
                resource
                for resource in self._resources.values()
                if resource.namespace_id == namespace_id
                and matches_all(resource.properties, predicates)
            ]
            rows.sort(key=lambda r: r.created_at, reverse=newest_first)
            return [copy.deepcopy(r) for r in rows]

    def count_resources(self, namespace_id: uuid.UUID) -> int:
        with self._lock:
            return sum(
                1 for r in self._resources.values() if r.namespace_id == namespace_id
            )

    def get_resource(self, resource_id: uuid.UUID) -> Optional[Resource]:
        with self._lock:
            resource = self._resources.get(resource_id)
            return copy.deepcopy(resource) if resource else None

    def insert_resource(
        self, namespace_id: uuid.UUID, properties: Dict[str, Any]
    ) -> Resource:
        with self._lock:
            if namespace_id not in self._namespaces:
                raise StorageError(
                    f"Foreign key violation: namespace {namespace_id} does not exist"
                )
            now = utcnow()
            resource = Resource(
                id=uuid.uuid4(),
                namespace_id=namespace_id,
                properties=copy.deepcopy(properties),
                created_at=now,
                updated_at=now,
            )
            self._resources[resource.id] = resource
            return copy.deepcopy(resource)

    def update_resource(
        self, resource_id: uuid.UUID, properties: Dict[str, Any]
    ) -> Optional[Resource]:
        with self._lock:
            resource = self._resources.get(resource_id)
            if resource is None:
                return None
            resource.properties = copy.deepcopy(properties)
            resource.updated_at = utcnow()
            return copy.deepcopy(resource)

    def merge_resource(
        self, resource_id: uuid.UUID, patch: Dict[str, Any]
    ) -> Optional[Resource]:
        with self._lock:
            resource = self._resources.get(resource_id)
            if resource is None:
                return None
            resource.properties.update(copy.deepcopy(patch))
            resource.updated_at = utcnow()
            return copy.deepcopy(resource)

    def delete_resource(self, resource_id: uuid.UUID) -> bool:
        with self._lock:
            return self._resources.pop(resource_id, None) is not None

    def _find_by_name(self, name: str) -> Optional[Namespace]:
        for namespace in self._namespaces.values():
            if namespace.name == name:
                return namespace
        return None

    def _insert_namespace(
        self, name: str, version: str, properties: Dict[str, Any]
    ) -> Namespace:
        now = utcnow()
        namespace = Namespace(
            id=uuid.uuid4(),
            name=name,
            version=version,
            properties=copy.deepcopy(properties),
            created_at=now,
            updated_at=now,
        )
        self._namespaces[namespace.id] = namespace
        return namespace
