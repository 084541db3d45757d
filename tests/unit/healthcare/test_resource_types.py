"""Tests for typed views generated from the schema table."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from violet_fhir.healthcare.resource_types import (
    ResourceTypeFactory,
    TypedResource,
    UnknownResource,
)


@pytest.fixture
def factory(validator):
    """Factory over the packaged schema table."""
    return ResourceTypeFactory(
        {name: validator.get_schema(name) for name in validator.supported_resource_types()}
    )


class TestResourceTypeFactory:
    """Dispatch on ``resourceType``."""

    def test_one_model_per_type(self, factory):
        """Every schema entry gets a model."""
        assert set(factory.models) == {"Condition", "Encounter", "Observation", "Patient"}
        assert factory.model_for("Device") is None

    def test_known_type(self, factory, patient_payload):
        """Known types become their generated model."""
        typed = factory.as_typed(patient_payload)
        assert isinstance(typed, TypedResource)
        assert type(typed).__name__ == "Patient"
        assert typed.gender == "female"
        assert typed.name[0].family == "Doe"
        assert typed.name[0].given == ["Jane"]

    def test_round_trip_to_properties(self, factory, patient_payload):
        """The typed view converts back to the same property bag."""
        assert factory.as_typed(patient_payload).to_properties() == patient_payload

    def test_extra_members_are_kept(self, factory):
        """Members outside the descriptor survive."""
        typed = factory.as_typed({"resourceType": "Patient", "deceasedBoolean": False})
        assert typed.to_properties()["deceasedBoolean"] is False

    def test_numbers_keep_integers(self, factory):
        """Integral quantities are not turned into floats."""
        typed = factory.as_typed(
            {
                "resourceType": "Observation",
                "status": "final",
                "code": {"coding": [{"code": "8867-4"}]},
                "valueQuantity": {"value": 72, "unit": "beats/minute"},
            }
        )
        assert typed.to_properties()["valueQuantity"]["value"] == 72
        assert isinstance(typed.valueQuantity.value, int)

    def test_enum_violation(self, factory):
        """Typed views enforce enumerations."""
        with pytest.raises(PydanticValidationError):
            factory.as_typed({"resourceType": "Patient", "gender": "robot"})

    def test_unknown_type(self, factory):
        """Types without a descriptor fall back to the raw mapping."""
        typed = factory.as_typed({"resourceType": "Device", "status": "active"})
        assert isinstance(typed, UnknownResource)
        assert typed.resourceType == "Device"
        assert typed.to_properties() == {"resourceType": "Device", "status": "active"}
