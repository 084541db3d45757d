"""Resource Store for Violet FHIR.

CRUD and filtered listing of property-bag records scoped to a namespace.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence

from violet_fhir.core.exceptions import NotFoundError, ValidationError
from violet_fhir.models.records import Namespace, Resource
from violet_fhir.storage.base import ResourceStorage
from violet_fhir.storage.predicates import StoragePredicate
from violet_fhir.utils.logging import get_logger

logger = get_logger(__name__)


class ResourceStore:
    """Service over resources owned by namespaces."""

    def __init__(self, storage: ResourceStorage):
        """Initialize the store.

        Args:
            storage: Storage backend shared with the namespace registry
        """
        self.storage = storage

    def find_all(
        self,
        namespace_id: uuid.UUID,
        filters: Sequence[StoragePredicate] = (),
        newest_first: bool = True,
    ) -> List[Resource]:
        """Resources of a namespace matching every filter.

        Ordered by ``created_at``, newest first unless asked otherwise. An
        unknown namespace simply has no resources.
        """
        return self.storage.list_resources(namespace_id, filters, newest_first)

    def count(self, namespace_id: uuid.UUID) -> int:
        """Number of resources owned by a namespace."""
        return self.storage.count_resources(namespace_id)

    def find_by_id(self, resource_id: uuid.UUID) -> Optional[Resource]:
        """Resource with ``resource_id``, or None."""
        return self.storage.get_resource(resource_id)

    def create(self, namespace_id: uuid.UUID, properties: Dict[str, Any]) -> Resource:
        """Store a new resource under an existing namespace.

        Raises:
            NotFoundError: If the namespace does not exist
            ValidationError: If a FHIR namespace receives another resourceType
        """
        namespace = self.storage.get_namespace(namespace_id)
        if namespace is None:
            raise NotFoundError("API Namespace not found")
        self._check_resource_type(namespace, properties)

        resource = self.storage.insert_resource(namespace_id, dict(properties))
        logger.info(
            "resource_created",
            resource_id=str(resource.id),
            namespace_id=str(namespace_id),
        )
        return resource

    def update(
        self,
        resource_id: uuid.UUID,
        properties: Dict[str, Any],
        replace: bool = False,
    ) -> Resource:
        """Update a resource's properties.

        By default this is a shallow merge: keys present in ``properties``
        overwrite, keys absent are kept. ``replace=True`` overwrites the whole
        property bag instead.

        Raises:
            NotFoundError: If the resource does not exist
            ValidationError: If a FHIR namespace receives another resourceType
        """
        current = self.storage.get_resource(resource_id)
        if current is None:
            raise NotFoundError("API Resource not found")

        namespace = self.storage.get_namespace(current.namespace_id)
        if namespace is not None:
            self._check_resource_type(namespace, properties)

        if replace:
            updated = self.storage.update_resource(resource_id, dict(properties))
        else:
            updated = self.storage.merge_resource(resource_id, properties)
        if updated is None:
            raise NotFoundError("API Resource not found")

        logger.info("resource_updated", resource_id=str(resource_id), replace=replace)
        return updated

    def destroy(self, resource_id: uuid.UUID) -> bool:
        """Delete a resource.

        Raises:
            NotFoundError: If the resource does not exist
        """
        if not self.storage.delete_resource(resource_id):
            raise NotFoundError("API Resource not found")
        logger.info("resource_destroyed", resource_id=str(resource_id))
        return True

    @staticmethod
    def _check_resource_type(namespace: Namespace, properties: Dict[str, Any]) -> None:
        """Records of a FHIR namespace are of the namespace's type."""
        if not namespace.is_protocol_resource:
            return
        declared = properties.get("resourceType")
        if declared is not None and declared != namespace.name:
            raise ValidationError(
                f"resourceType {declared} does not match namespace {namespace.name}"
            )
