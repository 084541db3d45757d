"""Structural validation of property-bag records.

Schemas are plain data, one descriptor per resource type, written in a small
subset of JSON Schema:

``type``
    a type token (``object``, ``array``, ``string``, ``number``, ``integer``,
    ``boolean``, ``null``) or a list of accepted tokens
``const`` / ``enum`` / ``pattern``
    exact value, value set, regular expression (strings only)
``required`` / ``properties``
    object members, checked recursively
``items``
    descriptor applied to every array element

The packaged table lives in ``healthcare/schemas/<ResourceType>.json``; adding
a type means adding a file, not code. Validation never stops at the first
violation: every failed constraint is reported with the path of the field.
"""

import json
import re
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Pattern, Union

from violet_fhir.utils.logging import get_logger

logger = get_logger(__name__)

TYPE_CHECKS = {
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "null": lambda v: v is None,
}


@dataclass
class ValidationResult:
    """Outcome of validating one record."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


def load_schema_table(directory: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load ``<ResourceType>.json`` descriptors from ``directory``.

    Without a directory the schemas packaged with this module are used.
    """
    table: Dict[str, Any] = {}
    if directory is None:
        source = resources.files("violet_fhir.healthcare").joinpath("schemas")
        entries = [e for e in source.iterdir() if e.name.endswith(".json")]
    else:
        entries = sorted(Path(directory).glob("*.json"))

    for entry in entries:
        resource_type = entry.name[: -len(".json")]
        table[resource_type] = json.loads(entry.read_text(encoding="utf-8"))

    logger.debug("schema_table_loaded", resource_types=sorted(table))
    return table


class ValidationEngine:
    """Validates records against the schema registered for their type."""

    def __init__(self, schemas: Optional[Mapping[str, Any]] = None) -> None:
        """Initialize engine with a schema table (type name -> descriptor)."""
        self._schemas: Dict[str, Any] = {}
        self._patterns: Dict[str, Pattern[str]] = {}
        for resource_type, schema in (schemas or {}).items():
            self.register_schema(resource_type, schema)

    @classmethod
    def from_directory(
        cls, directory: Optional[Union[str, Path]] = None
    ) -> "ValidationEngine":
        """Build an engine from a directory of JSON descriptors."""
        return cls(load_schema_table(directory))

    def register_schema(self, resource_type: str, schema: Mapping[str, Any]) -> None:
        """Add or replace the descriptor for ``resource_type``."""
        self._compile_patterns(schema)
        self._schemas[resource_type] = schema

    def supported_resource_types(self) -> List[str]:
        """Types that have a registered descriptor."""
        return sorted(self._schemas)

    def get_schema(self, resource_type: str) -> Optional[Mapping[str, Any]]:
        """Descriptor registered for ``resource_type``."""
        return self._schemas.get(resource_type)

    def validate(
        self,
        record: Any,
        fallback_schema: Optional[Mapping[str, Any]] = None,
    ) -> ValidationResult:
        """Validate ``record`` against the descriptor for its ``resourceType``.

        ``fallback_schema`` (e.g. a namespace's embedded schema) applies when
        the table has no entry for the type. A type with no descriptor at all is
        accepted with a warning.
        """
        if not isinstance(record, dict):
            return ValidationResult(False, ["Resource must be a JSON object"])

        resource_type = record.get("resourceType")
        if not resource_type:
            return ValidationResult(False, ["Missing resourceType"])

        schema = self._schemas.get(resource_type)
        if schema is None and fallback_schema:
            self._compile_patterns(fallback_schema)
            schema = fallback_schema

        if schema is None:
            logger.debug("validation_schema_missing", resource_type=resource_type)
            return ValidationResult(
                True, [], [f"no schema defined for {resource_type}"]
            )

        errors: List[str] = []
        self._check(record, schema, "", errors)
        return ValidationResult(not errors, errors)

    def _check(
        self, value: Any, schema: Mapping[str, Any], path: str, errors: List[str]
    ) -> None:
        pointer = path or "/"

        expected = schema.get("type")
        if expected is not None:
            tokens = expected if isinstance(expected, list) else [expected]
            if not any(TYPE_CHECKS[token](value) for token in tokens):
                errors.append(f"{pointer}: must be of type {' or '.join(tokens)}")
                return

        if "const" in schema and value != schema["const"]:
            errors.append(f"{pointer}: must be equal to {schema['const']!r}")

        if "enum" in schema and value not in schema["enum"]:
            allowed = ", ".join(str(v) for v in schema["enum"])
            errors.append(f"{pointer}: must be one of [{allowed}], got {value!r}")

        if "pattern" in schema and isinstance(value, str):
            if not self._patterns[schema["pattern"]].search(value):
                errors.append(f"{pointer}: must match pattern {schema['pattern']!r}")

        if isinstance(value, dict):
            for name in schema.get("required", []):
                if name not in value or value[name] is None:
                    errors.append(f"{path}/{name}: is required")
            for name, member_schema in schema.get("properties", {}).items():
                if name in value and value[name] is not None:
                    self._check(value[name], member_schema, f"{path}/{name}", errors)

        if isinstance(value, list) and "items" in schema:
            for index, item in enumerate(value):
                self._check(item, schema["items"], f"{path}/{index}", errors)

    def _compile_patterns(self, schema: Mapping[str, Any]) -> None:
        """Pre-compile regexes and reject unknown type tokens."""
        expected = schema.get("type")
        for token in expected if isinstance(expected, list) else [expected]:
            if token is not None and token not in TYPE_CHECKS:
                raise ValueError(f"Unknown schema type token: {token}")

        pattern = schema.get("pattern")
        if pattern is not None and pattern not in self._patterns:
            self._patterns[pattern] = re.compile(pattern)

        for member in schema.get("properties", {}).values():
            self._compile_patterns(member)
        if isinstance(schema.get("items"), Mapping):
            self._compile_patterns(schema["items"])
