"""FHIR search parameter configuration and translation to storage predicates."""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from violet_fhir.storage.predicates import (
    AnyOf,
    Contains,
    Equals,
    ILike,
    StoragePredicate,
)
from violet_fhir.utils.logging import get_logger

logger = get_logger(__name__)

# Kinds the translator turns into predicates; anything else is declared only.
IMPLEMENTED_KINDS = ("identifier", "string", "token", "reference")


class FHIRSearchParameters:
    """Define the searchable parameters of each resource type."""

    # Applies to every resource type
    COMMON_SEARCH_PARAMS = {
        "identifier": {
            "type": "identifier",
            "path": ("identifier",),
            "description": "Business identifier",
        },
        "_lastUpdated": {
            "type": "date",
            "path": ("meta", "lastUpdated"),
            "description": "When resource last changed",
        },
    }

    PATIENT_SEARCH_PARAMS = {
        "name": {
            "type": "string",
            "path": ("name", "family"),
            "description": "Patient family name",
        },
        "family": {
            "type": "string",
            "path": ("name", "family"),
            "description": "Patient family name",
        },
        "given": {
            "type": "string",
            "path": ("name", "given"),
            "description": "Patient given name",
        },
        "gender": {"type": "token", "path": ("gender",), "description": "Gender"},
        "birthdate": {
            "type": "date",
            "path": ("birthDate",),
            "description": "Patient birth date",
        },
        "address-city": {
            "type": "string",
            "path": ("address", "city"),
            "description": "City in address",
        },
    }

    OBSERVATION_SEARCH_PARAMS = {
        "patient": {
            "type": "reference",
            "path": ("subject", "reference"),
            "target": "Patient",
            "description": "The subject that the observation is about",
        },
        "subject": {
            "type": "reference",
            "path": ("subject", "reference"),
            "description": "The subject that the observation is about",
        },
        "code": {
            "type": "token",
            "path": ("code", "coding", "code"),
            "description": "The code of the observation type",
        },
        "status": {
            "type": "token",
            "path": ("status",),
            "description": "Status of the observation",
        },
        "date": {
            "type": "date",
            "path": ("effectiveDateTime",),
            "description": "Observation date/time",
        },
    }

    ENCOUNTER_SEARCH_PARAMS = {
        "patient": {
            "type": "reference",
            "path": ("subject", "reference"),
            "target": "Patient",
            "description": "The patient present at the encounter",
        },
        "status": {
            "type": "token",
            "path": ("status",),
            "description": "Status of the encounter",
        },
        "class": {
            "type": "token",
            "path": ("class", "code"),
            "description": "Classification of patient encounter",
        },
        "date": {
            "type": "date",
            "path": ("period", "start"),
            "description": "A date within the period the Encounter lasted",
        },
    }

    CONDITION_SEARCH_PARAMS = {
        "patient": {
            "type": "reference",
            "path": ("subject", "reference"),
            "target": "Patient",
            "description": "Who has the condition",
        },
        "code": {
            "type": "token",
            "path": ("code", "coding", "code"),
            "description": "Code for the condition",
        },
        "clinical-status": {
            "type": "token",
            "path": ("clinicalStatus", "coding", "code"),
            "description": "active | recurrence | relapse | inactive | remission | resolved",
        },
        "onset-date": {
            "type": "date",
            "path": ("onsetDateTime",),
            "description": "When condition started",
        },
    }

    @classmethod
    def for_resource_type(cls, resource_type: Optional[str]) -> Dict[str, Any]:
        """Parameters searchable on ``resource_type`` (common ones included)."""
        specific = getattr(
            cls, f"{(resource_type or '').upper()}_SEARCH_PARAMS", {}
        )
        return {**cls.COMMON_SEARCH_PARAMS, **specific}


class SearchTranslator:
    """Map protocol search parameters to storage predicates.

    Unknown parameter names and declared-but-unimplemented kinds (dates) are
    dropped, never rejected: search over a schema-less store is best effort.
    """

    def __init__(self, parameters: Optional[FHIRSearchParameters] = None) -> None:
        """Initialize translator with a parameter table."""
        self.parameters = parameters or FHIRSearchParameters()

    def translate(
        self, query_params: Mapping[str, Any], resource_type: Optional[str] = None
    ) -> List[StoragePredicate]:
        """Translate query parameters into conjunctive predicates."""
        table = self.parameters.for_resource_type(resource_type)
        predicates: List[StoragePredicate] = []

        for name, raw in query_params.items():
            definition = table.get(name)
            if definition is None:
                logger.debug("search_parameter_ignored", parameter=name)
                continue
            kind = definition["type"]
            if kind not in IMPLEMENTED_KINDS:
                logger.debug("search_parameter_unsupported", parameter=name, kind=kind)
                continue

            for value in raw if isinstance(raw, (list, tuple)) else [raw]:
                if value is None or value == "":
                    continue
                predicates.append(self._translate_one(kind, definition, str(value)))

        return predicates

    def _translate_one(
        self, kind: str, definition: Mapping[str, Any], value: str
    ) -> StoragePredicate:
        path: Tuple[str, ...] = tuple(definition["path"])

        if kind == "identifier":
            return self._identifier_predicate(path, value)
        if kind == "string":
            return ILike(path, value)
        if kind == "reference":
            return self._reference_predicate(path, value, definition.get("target"))
        # token
        return Equals(path, value.split("|", 1)[-1])

    @staticmethod
    def _identifier_predicate(path: Tuple[str, ...], value: str) -> StoragePredicate:
        """Plain ``P1`` or token form ``system|P1``."""
        if "|" in value:
            system, code = value.split("|", 1)
            entry: Dict[str, str] = {"value": code}
            if system:
                entry["system"] = system
            return Contains(path, entry)
        return AnyOf((Contains(path, value), Contains(path, {"value": value})))

    @staticmethod
    def _reference_predicate(
        path: Tuple[str, ...], value: str, target: Optional[str]
    ) -> StoragePredicate:
        """Accept ``Patient/123`` as well as a bare ``123`` for typed targets."""
        if target and "/" not in value:
            return AnyOf((Equals(path, f"{target}/{value}"), Equals(path, value)))
        return Equals(path, value)
