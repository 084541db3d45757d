"""Tests for the FHIR protocol adapter."""

import threading
import uuid

import pytest

from violet_fhir.core.exceptions import NotFoundError, ValidationError
from violet_fhir.healthcare.protocol_adapter import (
    WriteRequest,
    WriteStage,
    parse_id,
)
from violet_fhir.healthcare.resource_types import TypedResource, UnknownResource

BASE_URL = "http://testserver/fhir"


def encounter_payload(subject="Patient/123"):
    """Minimal valid Encounter."""
    return {
        "resourceType": "Encounter",
        "status": "finished",
        "class": {"system": "http://terminology.hl7.org/CodeSystem/v3-ActCode", "code": "AMB"},
        "subject": {"reference": subject},
    }


class TestWireFormat:
    """Conversion between stored properties and wire records."""

    def test_envelope_is_regenerated(self, adapter, registry, store):
        """Stored id/meta keys never leak; the envelope comes from the row."""
        namespace = registry.create("Patient")
        resource = store.create(
            namespace.id,
            {"resourceType": "Patient", "meta": {"versionId": "7"}, "gender": "male"},
        )
        wire = adapter.to_wire_format(resource)
        assert wire["id"] == str(resource.id)
        assert wire["meta"]["versionId"] == "1"
        assert wire["meta"]["lastUpdated"] == resource.updated_at.isoformat()
        assert wire["gender"] == "male"

    def test_from_wire_format_strips_envelope(self, adapter):
        """Client-supplied id and meta are not persisted."""
        namespace_id = uuid.uuid4()
        payload = adapter.from_wire_format(
            {"resourceType": "Patient", "id": "abc", "meta": {}, "gender": "male"},
            namespace_id,
        )
        assert payload.namespace_id == namespace_id
        assert payload.properties == {"resourceType": "Patient", "gender": "male"}

    def test_round_trip_preserves_content(self, adapter, registry, store):
        """Everything but id and meta survives storage and both conversions."""
        observation = {
            "resourceType": "Observation",
            "status": "final",
            "code": {
                "coding": [
                    {"system": "http://loinc.org", "code": "8867-4", "display": "Heart rate"},
                    {"system": "urn:local", "code": "hr"},
                ],
                "text": "Heart rate",
            },
            "subject": {"reference": "Patient/123"},
            "valueQuantity": {"value": 72.5, "unit": "beats/minute"},
            "note": [{"text": "resting"}],
        }
        created = adapter.create("Observation", {**observation, "id": "x", "meta": {}})
        namespace = registry.find_by_name("Observation")

        stored = store.find_by_id(uuid.UUID(created["id"]))
        assert stored.properties == observation

        wire = adapter.to_wire_format(stored)
        assert {k: v for k, v in wire.items() if k not in ("id", "meta")} == observation
        assert adapter.from_wire_format(wire, namespace.id).properties == observation
        assert adapter.read("Observation", created["id"]) == wire

    def test_type_name_fills_missing_tag(self, adapter, registry, store):
        """Records stored without a tag get the namespace's type."""
        namespace = registry.create("Patient")
        resource = store.create(namespace.id, {"gender": "male"})
        assert adapter.to_wire_format(resource, "Patient")["resourceType"] == "Patient"

    def test_typed_view(self, adapter, registry, store, patient_payload):
        """Stored resources expose their generated model."""
        namespace = registry.create("Patient")
        patient = store.create(namespace.id, patient_payload)
        device_ns = registry.create("Device")
        device = store.create(device_ns.id, {"resourceType": "Device"})
        assert isinstance(adapter.as_typed(patient), TypedResource)
        assert isinstance(adapter.as_typed(device), UnknownResource)


@pytest.mark.fhir_compliance
class TestCreate:
    """Protocol create."""

    def test_create_provisions_namespace(self, adapter, registry, patient_payload):
        """The first write of a type creates its marked namespace."""
        wire = adapter.create("Patient", patient_payload)

        namespace = registry.find_by_name("Patient")
        assert namespace is not None
        assert namespace.is_protocol_resource
        assert namespace.properties["protocol_version"] == "R4"
        assert wire["resourceType"] == "Patient"
        assert wire["meta"]["versionId"] == "1"
        assert wire["name"] == patient_payload["name"]
        uuid.UUID(wire["id"])

    def test_client_id_is_ignored(self, adapter, patient_payload):
        """The server assigns ids."""
        wire = adapter.create("Patient", {**patient_payload, "id": "client-chosen"})
        assert wire["id"] != "client-chosen"
        assert adapter.read("Patient", wire["id"])["id"] == wire["id"]

    def test_type_mismatch_is_rejected_before_provisioning(self, adapter, registry):
        """A body of another type never provisions the path's type."""
        with pytest.raises(ValidationError, match="Resource type mismatch"):
            adapter.create("Encounter", {"resourceType": "Patient"})
        assert registry.find_by_name("Encounter") is None

    def test_non_object_body(self, adapter):
        """Bodies must be JSON objects."""
        with pytest.raises(ValidationError):
            adapter.create("Patient", ["not", "a", "resource"])

    def test_structural_errors_are_all_reported(self, adapter, registry, store):
        """Nothing is persisted when validation fails."""
        with pytest.raises(ValidationError) as exc_info:
            adapter.create(
                "Patient",
                {"resourceType": "Patient", "gender": "robot", "birthDate": "yesterday"},
            )
        assert len(exc_info.value.errors) == 2
        assert exc_info.value.message.startswith("FHIR validation failed: ")
        assert registry.find_by_name("Patient") is None

    def test_rejected_first_write_leaves_no_namespace(self, adapter, registry, validator):
        """A new type only becomes visible once a record of it is stored."""
        validator.register_schema("Flag", {"type": "object", "required": ["status"]})
        with pytest.raises(ValidationError):
            adapter.create("Flag", {"resourceType": "Flag"})

        assert registry.find_by_name("Flag") is None
        with pytest.raises(NotFoundError):
            adapter.search("Flag", {}, BASE_URL)
        types = [r["type"] for r in adapter.build_capability_document()["rest"][0]["resource"]]
        assert types.count("Flag") == 1

        adapter.create("Flag", {"resourceType": "Flag", "status": "active"})
        assert registry.find_by_name("Flag").is_protocol_resource
        assert adapter.search("Flag", {}, BASE_URL)["total"] == 1

    def test_rejected_write_of_existing_type_stores_nothing(self, adapter, store):
        """Validation failures never reach the store."""
        namespace = adapter.resolve_or_provision_namespace("Patient")
        with pytest.raises(ValidationError):
            adapter.create("Patient", {"resourceType": "Patient", "gender": "robot"})
        assert store.count(namespace.id) == 0

    def test_unknown_type_is_accepted(self, adapter, registry):
        """Types without a schema are stored after a warning."""
        wire = adapter.create("Device", {"resourceType": "Device", "status": "active"})
        assert adapter.read("Device", wire["id"])["status"] == "active"
        assert registry.find_by_name("Device").is_protocol_resource

    def test_namespace_required_fields(self, adapter, registry):
        """A namespace's declared required fields guard schema-less types."""
        registry.create(
            "Device", properties={"resource_type": "fhir", "required_fields": ["status"]}
        )
        with pytest.raises(ValidationError) as exc_info:
            adapter.create("Device", {"resourceType": "Device"})
        assert exc_info.value.errors == ["/status: is required"]

    @pytest.mark.parametrize("key", ["schema", "fhir_schema"])
    def test_namespace_embedded_schema(self, adapter, registry, key):
        """An embedded schema is honoured under either property name."""
        registry.create(
            "Device",
            properties={
                "resource_type": "fhir",
                key: {"type": "object", "required": ["status"]},
            },
        )
        with pytest.raises(ValidationError) as exc_info:
            adapter.create("Device", {"resourceType": "Device"})
        assert exc_info.value.errors == ["/status: is required"]
        assert adapter.create("Device", {"resourceType": "Device", "status": "active"})

    @pytest.mark.concurrency
    def test_concurrent_first_writes(self, adapter, registry, store):
        """Concurrent creators of a new type share one namespace."""
        errors = []
        barrier = threading.Barrier(8)

        def create():
            try:
                barrier.wait()
                adapter.create("Encounter", encounter_payload())
            except Exception as e:  # pylint: disable=broad-except
                errors.append(e)

        threads = [threading.Thread(target=create) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        namespaces = [ns for ns in registry.find_all() if ns.name == "Encounter"]
        assert len(namespaces) == 1
        assert store.count(namespaces[0].id) == 8


@pytest.mark.fhir_compliance
class TestReadUpdateDelete:
    """Instance-level interactions."""

    def test_read(self, adapter, patient_payload):
        """Read returns what create returned."""
        created = adapter.create("Patient", patient_payload)
        assert adapter.read("Patient", created["id"]) == created

    @pytest.mark.parametrize("resource_id", ["not-a-uuid", str(uuid.uuid4())])
    def test_read_missing(self, adapter, resource_id):
        """Unknown and malformed ids are not found."""
        with pytest.raises(NotFoundError):
            adapter.read("Patient", resource_id)

    def test_read_through_another_type(self, adapter, patient_payload):
        """An id is only reachable under its own type."""
        created = adapter.create("Patient", patient_payload)
        with pytest.raises(NotFoundError):
            adapter.read("Observation", created["id"])

    def test_update_replaces_content(self, adapter, patient_payload):
        """A protocol update carries the complete resource."""
        created = adapter.create("Patient", patient_payload)
        updated = adapter.update(
            "Patient",
            created["id"],
            {"resourceType": "Patient", "id": created["id"], "gender": "other"},
        )
        assert updated["id"] == created["id"]
        assert updated["gender"] == "other"
        assert "name" not in adapter.read("Patient", created["id"])

    def test_update_merge(self, adapter, patient_payload):
        """Merging keeps members the body omits."""
        created = adapter.create("Patient", patient_payload)
        updated = adapter.update(
            "Patient", created["id"], {"resourceType": "Patient", "gender": "other"}, replace=False
        )
        assert updated["gender"] == "other"
        assert updated["name"] == patient_payload["name"]

    def test_update_id_mismatch(self, adapter, patient_payload):
        """A body id must name the path's resource."""
        created = adapter.create("Patient", patient_payload)
        with pytest.raises(ValidationError, match="id mismatch"):
            adapter.update(
                "Patient",
                created["id"],
                {"resourceType": "Patient", "id": str(uuid.uuid4())},
            )

    def test_update_validates_structure(self, adapter, patient_payload):
        """Updates go through the same validation as creates."""
        created = adapter.create("Patient", patient_payload)
        with pytest.raises(ValidationError):
            adapter.update("Patient", created["id"], {"resourceType": "Patient", "gender": 1})
        assert adapter.read("Patient", created["id"])["gender"] == "female"

    def test_update_missing(self, adapter):
        """Updating an unknown id is not found."""
        with pytest.raises(NotFoundError):
            adapter.update("Patient", str(uuid.uuid4()), {"resourceType": "Patient"})

    def test_delete(self, adapter, patient_payload):
        """Deleted resources are gone."""
        created = adapter.create("Patient", patient_payload)
        assert adapter.delete("Patient", created["id"]) is True
        with pytest.raises(NotFoundError):
            adapter.read("Patient", created["id"])
        with pytest.raises(NotFoundError):
            adapter.delete("Patient", created["id"])


@pytest.mark.fhir_compliance
class TestSearch:
    """Type-level search."""

    def test_unknown_type(self, adapter):
        """Searching a type that was never provisioned is not found."""
        with pytest.raises(NotFoundError):
            adapter.search("Patient", {}, BASE_URL)

    def test_bundle(self, adapter, patient_payload):
        """Results form a searchset bundle, newest first."""
        first = adapter.create("Patient", patient_payload)
        second = adapter.create(
            "Patient", {**patient_payload, "identifier": [{"value": "P2"}]}
        )

        bundle = adapter.search("Patient", {}, BASE_URL)
        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "searchset"
        assert bundle["total"] == 2
        assert [e["resource"]["id"] for e in bundle["entry"]] == [second["id"], first["id"]]
        assert bundle["entry"][0]["fullUrl"] == f"{BASE_URL}/Patient/{second['id']}"
        assert bundle["entry"][0]["search"] == {"mode": "match"}

    def test_identifier_search(self, adapter, patient_payload):
        """Identifier search matches objects by value and system|value."""
        match = adapter.create("Patient", patient_payload)
        adapter.create("Patient", {**patient_payload, "identifier": [{"value": "P2"}]})

        for value in ("P1", "urn:mrn|P1"):
            bundle = adapter.search("Patient", {"identifier": value}, BASE_URL)
            assert [e["resource"]["id"] for e in bundle["entry"]] == [match["id"]]
        assert adapter.search("Patient", {"identifier": "other|P1"}, BASE_URL)["total"] == 0

    def test_reference_search(self, adapter):
        """``patient=`` accepts bare ids and full references."""
        match = adapter.create("Encounter", encounter_payload("Patient/123"))
        adapter.create("Encounter", encounter_payload("Patient/456"))

        for value in ("123", "Patient/123"):
            bundle = adapter.search("Encounter", {"patient": value}, BASE_URL)
            assert [e["resource"]["id"] for e in bundle["entry"]] == [match["id"]]

    def test_unsupported_parameters_are_ignored(self, adapter, patient_payload):
        """Date parameters do not narrow the result."""
        adapter.create("Patient", patient_payload)
        assert adapter.search("Patient", {"birthdate": "2000-01-01"}, BASE_URL)["total"] == 1


@pytest.mark.fhir_compliance
class TestCapabilityStatement:
    """Server capability document."""

    def test_lists_schema_and_provisioned_types(self, adapter):
        """Schema types are always listed; provisioned types join them."""
        adapter.create("Device", {"resourceType": "Device"})
        document = adapter.build_capability_document(BASE_URL)

        assert document["resourceType"] == "CapabilityStatement"
        assert document["fhirVersion"] == "4.0.1"
        resources = document["rest"][0]["resource"]
        assert [r["type"] for r in resources] == [
            "Condition",
            "Device",
            "Encounter",
            "Observation",
            "Patient",
        ]

    def test_only_implemented_search_parameters(self, adapter):
        """Declared-but-ignored parameters are not advertised."""
        document = adapter.build_capability_document(BASE_URL)
        patient = next(r for r in document["rest"][0]["resource"] if r["type"] == "Patient")
        names = {p["name"] for p in patient["searchParam"]}
        assert {"identifier", "family", "given", "gender"} <= names
        assert "birthdate" not in names
        assert "_lastUpdated" not in names


class TestWriteRequest:
    """Write state machine."""

    def test_rejected_requests_cannot_advance(self):
        """REJECTED is terminal."""
        request = WriteRequest(action="create", type_name="Patient")
        request.stage = WriteStage.REJECTED
        with pytest.raises(RuntimeError):
            request.advance(WriteStage.PERSISTED)

    def test_persisted_at_most_once(self):
        """The side-effecting stage is entered once."""
        request = WriteRequest(action="create", type_name="Patient")
        request.advance(WriteStage.PERSISTED)
        with pytest.raises(RuntimeError):
            request.advance(WriteStage.PERSISTED)

    def test_parse_id(self):
        """Path ids parse to UUIDs; malformed ones are not found."""
        value = uuid.uuid4()
        assert parse_id(str(value), "Patient") == value
        assert parse_id(value, "Patient") is value
        with pytest.raises(NotFoundError, match="Patient/abc not found"):
            parse_id("abc", "Patient")
