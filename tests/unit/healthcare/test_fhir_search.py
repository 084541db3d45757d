"""Tests for search parameter translation."""

import pytest

from violet_fhir.healthcare.fhir_search import FHIRSearchParameters
from violet_fhir.storage.predicates import AnyOf, Contains, Equals, ILike


class TestSearchParameters:
    """Parameter table lookups."""

    def test_common_parameters_apply_to_every_type(self):
        """``identifier`` is searchable on any type, known or not."""
        assert "identifier" in FHIRSearchParameters.for_resource_type("Device")
        assert "identifier" in FHIRSearchParameters.for_resource_type(None)

    def test_type_specific_parameters(self):
        """Type tables are merged over the common table."""
        params = FHIRSearchParameters.for_resource_type("Patient")
        assert params["family"]["path"] == ("name", "family")
        assert "patient" not in params


class TestSearchTranslator:
    """Query parameters to predicates."""

    def test_plain_identifier(self, translator):
        """A bare value matches string identifiers or identifier objects."""
        assert translator.translate({"identifier": "P1"}, "Patient") == [
            AnyOf(
                (
                    Contains(("identifier",), "P1"),
                    Contains(("identifier",), {"value": "P1"}),
                )
            )
        ]

    def test_token_identifier(self, translator):
        """``system|value`` pins both members."""
        assert translator.translate({"identifier": "urn:mrn|P1"}, "Patient") == [
            Contains(("identifier",), {"system": "urn:mrn", "value": "P1"})
        ]

    def test_identifier_without_system(self, translator):
        """``|value`` matches on value alone."""
        assert translator.translate({"identifier": "|P1"}, "Patient") == [
            Contains(("identifier",), {"value": "P1"})
        ]

    def test_string_parameters(self, translator):
        """String parameters become partial case-insensitive matches."""
        assert translator.translate({"family": "Doe", "given": "jan"}, "Patient") == [
            ILike(("name", "family"), "Doe"),
            ILike(("name", "given"), "jan"),
        ]

    def test_token_parameters(self, translator):
        """Tokens compare the code, ignoring any system prefix."""
        assert translator.translate(
            {"code": "http://loinc.org|8867-4", "status": "final"}, "Observation"
        ) == [
            Equals(("code", "coding", "code"), "8867-4"),
            Equals(("status",), "final"),
        ]

    def test_typed_reference_accepts_bare_id(self, translator):
        """``patient=123`` also matches ``Patient/123``."""
        assert translator.translate({"patient": "123"}, "Observation") == [
            AnyOf(
                (
                    Equals(("subject", "reference"), "Patient/123"),
                    Equals(("subject", "reference"), "123"),
                )
            )
        ]

    def test_full_reference(self, translator):
        """A full reference is compared as-is."""
        assert translator.translate({"subject": "Patient/123"}, "Observation") == [
            Equals(("subject", "reference"), "Patient/123")
        ]

    @pytest.mark.parametrize(
        "params",
        [
            {"birthdate": "1980-01-15"},
            {"_lastUpdated": "gt2020-01-01"},
            {"_count": "10"},
            {"unknown": "x"},
            {"family": ""},
        ],
    )
    def test_dropped_parameters(self, translator, params):
        """Dates, unknown names and empty values produce no predicate."""
        assert translator.translate(params, "Patient") == []

    def test_repeated_parameter(self, translator):
        """Every value of a repeated parameter must match."""
        assert translator.translate({"given": ["Jane", "Ann"]}, "Patient") == [
            ILike(("name", "given"), "Jane"),
            ILike(("name", "given"), "Ann"),
        ]
