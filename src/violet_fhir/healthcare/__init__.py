"""FHIR protocol support: validation, search, typed views and the adapter."""
