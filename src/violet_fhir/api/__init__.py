"""REST API for Violet FHIR."""
