"""Namespace Registry for Violet FHIR.

Defines and looks up resource-type definitions. A namespace's ``name`` is the
resource-type tag (``Patient``) and is globally unique.
"""

import re
import uuid
from typing import Any, Dict, List, Optional

from violet_fhir.core.exceptions import (
    ConflictError,
    NotFoundError,
    UniqueViolationError,
    ValidationError,
)
from violet_fhir.models.records import Namespace
from violet_fhir.storage.base import ResourceStorage
from violet_fhir.utils.logging import get_logger

logger = get_logger(__name__)

NAMESPACE_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")
DEFAULT_VERSION = "1"


class NamespaceRegistry:
    """CRUD over namespace definitions."""

    def __init__(self, storage: ResourceStorage):
        """Initialize the registry.

        Args:
            storage: Storage backend shared with the resource store
        """
        self.storage = storage

    def find_all(self) -> List[Namespace]:
        """All namespaces ordered by name."""
        return self.storage.list_namespaces()

    def find_by_name(self, name: str) -> Optional[Namespace]:
        """Namespace with ``name``, or None."""
        return self.storage.get_namespace_by_name(name)

    def find_by_id(self, namespace_id: uuid.UUID) -> Optional[Namespace]:
        """Namespace with ``namespace_id``, or None."""
        return self.storage.get_namespace(namespace_id)

    def create(
        self,
        name: str,
        version: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
        upsert: bool = False,
    ) -> Namespace:
        """Create a namespace.

        Args:
            name: Unique resource-type tag
            version: Definition version, "1" when omitted
            properties: Metadata bag (marker, protocol version, description...)
            upsert: Return the existing namespace instead of failing when
                ``name`` is taken; the existing row is returned unchanged

        Returns:
            Namespace: The created (or, with ``upsert``, existing) namespace

        Raises:
            ValidationError: If ``name`` is not a valid type name
            ConflictError: If ``name`` exists and ``upsert`` is False
        """
        self._validate_name(name)
        version = version or DEFAULT_VERSION
        properties = dict(properties or {})

        if upsert:
            namespace = self.storage.insert_namespace_or_get(name, version, properties)
            logger.info("namespace_resolved", name=name, namespace_id=str(namespace.id))
            return namespace

        try:
            namespace = self.storage.insert_namespace(name, version, properties)
        except UniqueViolationError as e:
            raise ConflictError(f"API Namespace '{name}' already exists") from e

        logger.info("namespace_created", name=name, namespace_id=str(namespace.id))
        return namespace

    def update(
        self,
        namespace_id: uuid.UUID,
        version: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> Namespace:
        """Replace version and/or properties; omitted values are kept.

        Raises:
            NotFoundError: If the namespace does not exist
        """
        current = self.get(namespace_id)
        updated = self.storage.update_namespace(
            namespace_id,
            version or current.version,
            properties if properties is not None else current.properties,
        )
        if updated is None:
            raise NotFoundError("API Namespace not found")
        logger.info("namespace_updated", namespace_id=str(namespace_id))
        return updated

    def destroy(self, namespace_id: uuid.UUID) -> bool:
        """Delete a namespace together with every resource it owns.

        Raises:
            NotFoundError: If the namespace does not exist
        """
        if not self.storage.delete_namespace(namespace_id):
            raise NotFoundError("API Namespace not found")
        logger.info("namespace_destroyed", namespace_id=str(namespace_id))
        return True

    def get(self, namespace_id: uuid.UUID) -> Namespace:
        """Namespace with ``namespace_id``.

        Raises:
            NotFoundError: If the namespace does not exist
        """
        namespace = self.find_by_id(namespace_id)
        if namespace is None:
            raise NotFoundError("API Namespace not found")
        return namespace

    @staticmethod
    def _validate_name(name: str) -> None:
        if not isinstance(name, str) or not NAMESPACE_NAME_PATTERN.match(name):
            raise ValidationError(
                f"Invalid namespace name: {name!r}",
                errors=["name must start with a letter and contain only letters and digits"],
            )
