"""FHIR protocol adapter.

Converts stored resources to and from the FHIR wire representation, assembles
search bundles and the capability statement, and drives each protocol request
through the namespace registry, the validation engine and the resource store.

A write request moves through::

    RECEIVED -> TYPE_VALIDATED -> NAMESPACE_RESOLVED -> STRUCTURALLY_VALIDATED
             -> PERSISTED -> RENDERED

and any stage may end in REJECTED with a typed error. Nothing is written
before STRUCTURALLY_VALIDATED: a first write of a new type provisions its
namespace only on the way into PERSISTED, which is entered at most once per
request.
"""

import copy
import enum
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Iterable, List, Mapping, Optional, Union

from violet_fhir.config import Settings, get_settings
from violet_fhir.core.exceptions import NotFoundError, ValidationError, VioletFHIRError
from violet_fhir.healthcare.fhir_search import IMPLEMENTED_KINDS, SearchTranslator
from violet_fhir.healthcare.resource_types import (
    ResourceTypeFactory,
    TypedResource,
    UnknownResource,
)
from violet_fhir.healthcare.validation_engine import ValidationEngine
from violet_fhir.models.records import Namespace, Resource
from violet_fhir.services.namespace_registry import NamespaceRegistry
from violet_fhir.services.resource_store import ResourceStore
from violet_fhir.utils.logging import get_logger

logger = get_logger(__name__)

ENVELOPE_FIELDS = ("id", "meta")
VERSION_ID = "1"
INTERACTIONS = ("read", "create", "update", "delete", "search-type")
SEARCH_KIND_TO_FHIR = {
    "identifier": "token",
    "string": "string",
    "token": "token",
    "reference": "reference",
    "date": "date",
}


class WriteStage(enum.Enum):
    """Stages of a protocol write request."""

    RECEIVED = "received"
    TYPE_VALIDATED = "type_validated"
    NAMESPACE_RESOLVED = "namespace_resolved"
    STRUCTURALLY_VALIDATED = "structurally_validated"
    PERSISTED = "persisted"
    RENDERED = "rendered"
    REJECTED = "rejected"


@dataclass
class WriteRequest:
    """Progress of one write request through the stages."""

    action: str
    type_name: str
    resource_id: Optional[str] = None
    stage: WriteStage = WriteStage.RECEIVED
    history: List[WriteStage] = field(default_factory=lambda: [WriteStage.RECEIVED])

    def advance(self, stage: WriteStage) -> None:
        """Move to ``stage``."""
        if self.stage is WriteStage.REJECTED:
            raise RuntimeError("Rejected request cannot advance")
        if stage is WriteStage.PERSISTED and WriteStage.PERSISTED in self.history:
            raise RuntimeError("Request already persisted")
        self.stage = stage
        self.history.append(stage)


@dataclass
class StoragePayload:
    """What a wire record becomes before it reaches the resource store."""

    namespace_id: uuid.UUID
    properties: Dict[str, Any]


def parse_id(value: Union[str, uuid.UUID], label: str) -> uuid.UUID:
    """Parse a path id; malformed ids can never exist, so they are not found."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise NotFoundError(f"{label}/{value} not found") from e


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class ProtocolAdapter:
    """FHIR-facing adapter over the namespace/resource core."""

    def __init__(
        self,
        registry: NamespaceRegistry,
        store: ResourceStore,
        validator: ValidationEngine,
        translator: Optional[SearchTranslator] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the adapter with its collaborators."""
        self.registry = registry
        self.store = store
        self.validator = validator
        self.translator = translator or SearchTranslator()
        self.settings = settings or get_settings()
        self._types: Optional[ResourceTypeFactory] = None

    # Wire conversion

    def to_wire_format(
        self, resource: Resource, type_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """Stored resource -> wire record with a regenerated id/meta envelope."""
        wire: Dict[str, Any] = {}
        resource_type = resource.properties.get("resourceType") or type_name
        if resource_type:
            wire["resourceType"] = resource_type
        wire["id"] = str(resource.id)
        wire["meta"] = {
            "versionId": VERSION_ID,
            "lastUpdated": _isoformat(resource.updated_at),
        }
        for key, value in resource.properties.items():
            if key not in ENVELOPE_FIELDS:
                wire[key] = copy.deepcopy(value)
        return wire

    def from_wire_format(
        self, wire_record: Mapping[str, Any], namespace_id: uuid.UUID
    ) -> StoragePayload:
        """Wire record -> properties to persist, envelope stripped."""
        properties = {
            key: copy.deepcopy(value)
            for key, value in wire_record.items()
            if key not in ENVELOPE_FIELDS
        }
        return StoragePayload(namespace_id=namespace_id, properties=properties)

    def as_typed(self, resource: Resource) -> Union[TypedResource, UnknownResource]:
        """Typed view of a stored resource."""
        if self._types is None:
            self._types = ResourceTypeFactory(
                {
                    name: self.validator.get_schema(name)
                    for name in self.validator.supported_resource_types()
                }
            )
        return self._types.as_typed(resource.properties)

    def build_bundle(
        self, resources: Iterable[Resource], base_url: str, type_name: str
    ) -> Dict[str, Any]:
        """Searchset bundle with one absolute ``fullUrl`` per entry."""
        base = base_url.rstrip("/")
        entries = [
            {
                "fullUrl": f"{base}/{type_name}/{resource.id}",
                "resource": self.to_wire_format(resource, type_name),
                "search": {"mode": "match"},
            }
            for resource in resources
        ]
        return {
            "resourceType": "Bundle",
            "type": "searchset",
            "total": len(entries),
            "entry": entries,
        }

    def build_capability_document(self, base_url: str = "") -> Dict[str, Any]:
        """CapabilityStatement listing schema types and provisioned types."""
        type_names = set(self.validator.supported_resource_types())
        type_names.update(
            ns.name for ns in self.registry.find_all() if ns.is_protocol_resource
        )

        resources = []
        for type_name in sorted(type_names):
            entry: Dict[str, Any] = {
                "type": type_name,
                "interaction": [{"code": code} for code in INTERACTIONS],
                "versioning": "no-version",
                "updateCreate": False,
            }
            params = self.translator.parameters.for_resource_type(type_name)
            search_params = [
                {"name": name, "type": SEARCH_KIND_TO_FHIR[definition["type"]]}
                for name, definition in params.items()
                if definition["type"] in IMPLEMENTED_KINDS
            ]
            if search_params:
                entry["searchParam"] = search_params
            resources.append(entry)

        return {
            "resourceType": "CapabilityStatement",
            "status": "active",
            "date": datetime.now(timezone.utc).isoformat(),
            "kind": "instance",
            "software": {
                "name": self.settings.app_name,
                "version": self.settings.app_version,
            },
            "implementation": {
                "description": f"{self.settings.app_name} FHIR {self.settings.protocol_version} API",
                "url": base_url.rstrip("/"),
            },
            "fhirVersion": self.settings.fhir_version,
            "format": ["json"],
            "rest": [{"mode": "server", "resource": resources}],
        }

    # Namespace provisioning

    def resolve_or_provision_namespace(self, type_name: str) -> Namespace:
        """Namespace for ``type_name``, created on first use.

        Provisioning goes through the registry's atomic insert-or-fetch, so
        concurrent first writers of a new type converge on one namespace.
        """
        namespace = self.registry.find_by_name(type_name)
        if namespace is not None:
            return namespace

        namespace = self.registry.create(
            type_name,
            version="1",
            properties={
                "resource_type": self.settings.protocol_marker,
                "protocol_version": self.settings.protocol_version,
            },
            upsert=True,
        )
        logger.info(
            "namespace_provisioned", name=type_name, namespace_id=str(namespace.id)
        )
        return namespace

    # Protocol operations

    def search(
        self, type_name: str, query_params: Mapping[str, Any], base_url: str
    ) -> Dict[str, Any]:
        """Search resources of a known type."""
        namespace = self.registry.find_by_name(type_name)
        if namespace is None:
            raise NotFoundError(f"Resource type {type_name} not found")

        predicates = self.translator.translate(query_params, type_name)
        resources = self.store.find_all(namespace.id, predicates)
        return self.build_bundle(resources, base_url, type_name)

    def read(self, type_name: str, resource_id: str) -> Dict[str, Any]:
        """Read one resource of ``type_name``."""
        resource, _ = self._load(type_name, resource_id)
        return self.to_wire_format(resource, type_name)

    def create(self, type_name: str, wire_record: Any) -> Dict[str, Any]:
        """Create a resource, provisioning its namespace if needed."""
        with self._write_request("create", type_name) as request:
            self._check_declared_type(type_name, wire_record)
            request.advance(WriteStage.TYPE_VALIDATED)

            namespace = self.registry.find_by_name(type_name)
            request.advance(WriteStage.NAMESPACE_RESOLVED)

            self._check_structure(wire_record, namespace, type_name)
            request.advance(WriteStage.STRUCTURALLY_VALIDATED)

            # a rejected first write must not leave its namespace behind
            if namespace is None:
                namespace = self.resolve_or_provision_namespace(type_name)
            payload = self.from_wire_format(wire_record, namespace.id)
            resource = self.store.create(payload.namespace_id, payload.properties)
            request.resource_id = str(resource.id)
            request.advance(WriteStage.PERSISTED)

            wire = self.to_wire_format(resource, type_name)
            request.advance(WriteStage.RENDERED)
            return wire

    def update(
        self,
        type_name: str,
        resource_id: str,
        wire_record: Any,
        replace: bool = True,
    ) -> Dict[str, Any]:
        """Update an existing resource.

        A protocol PUT carries the complete resource, so by default the stored
        properties are replaced; ``replace=False`` merges instead.
        """
        with self._write_request("update", type_name, resource_id) as request:
            self._check_declared_type(type_name, wire_record)
            body_id = wire_record.get("id")
            if body_id is not None and str(body_id) != str(resource_id):
                raise ValidationError(
                    f"Resource id mismatch: expected {resource_id}, got {body_id}"
                )
            request.advance(WriteStage.TYPE_VALIDATED)

            existing, namespace = self._load(type_name, resource_id)
            request.advance(WriteStage.NAMESPACE_RESOLVED)

            self._check_structure(wire_record, namespace, type_name)
            request.advance(WriteStage.STRUCTURALLY_VALIDATED)

            payload = self.from_wire_format(wire_record, namespace.id)
            resource = self.store.update(existing.id, payload.properties, replace=replace)
            request.advance(WriteStage.PERSISTED)

            wire = self.to_wire_format(resource, type_name)
            request.advance(WriteStage.RENDERED)
            return wire

    def delete(self, type_name: str, resource_id: str) -> bool:
        """Delete one resource of ``type_name``."""
        resource, _ = self._load(type_name, resource_id)
        return self.store.destroy(resource.id)

    # Internals

    def _load(self, type_name: str, resource_id: str) -> Any:
        """Resource and its namespace; other types' ids are not found here."""
        not_found = f"{type_name}/{resource_id} not found"
        resource = self.store.find_by_id(parse_id(resource_id, type_name))
        if resource is None:
            raise NotFoundError(not_found)
        namespace = self.registry.find_by_id(resource.namespace_id)
        if namespace is None or namespace.name != type_name:
            raise NotFoundError(not_found)
        return resource, namespace

    @staticmethod
    def _check_declared_type(type_name: str, wire_record: Any) -> None:
        if not isinstance(wire_record, dict):
            raise ValidationError("Request body must be a JSON object")
        declared = wire_record.get("resourceType")
        if declared != type_name:
            raise ValidationError(
                f"Resource type mismatch: expected {type_name}, got {declared}"
            )

    def _check_structure(
        self,
        wire_record: Dict[str, Any],
        namespace: Optional[Namespace],
        type_name: str,
    ) -> None:
        """Validate against the table schema, else the namespace's own one."""
        fallback: Optional[Dict[str, Any]] = None
        if namespace is not None and namespace.schema:
            fallback = namespace.schema
        elif namespace is not None and namespace.required_fields:
            fallback = {"type": "object", "required": namespace.required_fields}

        result = self.validator.validate(wire_record, fallback_schema=fallback)
        for warning in result.warnings:
            logger.warning("validation_warning", resource_type=type_name, warning=warning)
        if not result.valid:
            raise ValidationError(
                f"FHIR validation failed: {', '.join(result.errors)}",
                errors=result.errors,
            )

    @contextmanager
    def _write_request(
        self, action: str, type_name: str, resource_id: Optional[str] = None
    ) -> Generator[WriteRequest, None, None]:
        request = WriteRequest(action=action, type_name=type_name, resource_id=resource_id)
        try:
            yield request
        except VioletFHIRError as e:
            failed_at = request.stage
            request.stage = WriteStage.REJECTED
            request.history.append(WriteStage.REJECTED)
            logger.info(
                "write_rejected",
                action=action,
                resource_type=type_name,
                resource_id=request.resource_id,
                stage=failed_at.value,
                error_code=e.code,
            )
            raise
        logger.debug(
            "write_completed",
            action=action,
            resource_type=type_name,
            resource_id=request.resource_id,
            stages=[stage.value for stage in request.history],
        )
