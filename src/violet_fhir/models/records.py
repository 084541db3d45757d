"""Storage-independent namespace and resource records.

Every storage backend hands these out; components never see ORM instances.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Namespace:
    """A named, versioned resource-type definition."""

    id: uuid.UUID
    name: str
    version: str = "1"
    properties: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_protocol_resource(self) -> bool:
        """Whether this namespace carries the FHIR marker."""
        return self.properties.get("resource_type") == "fhir"

    @property
    def schema(self) -> Dict[str, Any]:
        """Embedded schema, under ``schema`` or ``fhir_schema``."""
        return self.properties.get("schema") or self.properties.get("fhir_schema") or {}

    @property
    def required_fields(self) -> List[str]:
        """Required fields declared in the namespace metadata."""
        return list(self.properties.get("required_fields") or [])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "id": str(self.id),
            "name": self.name,
            "version": self.version,
            "properties": copy.deepcopy(self.properties),
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


@dataclass
class Resource:
    """A property-bag record owned by exactly one namespace."""

    id: uuid.UUID
    namespace_id: uuid.UUID
    properties: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def resource_type(self) -> Optional[str]:
        """Declared type tag of the payload."""
        return self.properties.get("resourceType")

    @property
    def identifier(self) -> Any:
        """Identifier list of the payload, if any."""
        return self.properties.get("identifier")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "id": str(self.id),
            "namespace_id": str(self.namespace_id),
            "properties": copy.deepcopy(self.properties),
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }
