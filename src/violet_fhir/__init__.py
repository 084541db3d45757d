"""Violet FHIR - a schema-less namespace/resource store with a FHIR REST adapter."""

__version__ = "1.0.0"
