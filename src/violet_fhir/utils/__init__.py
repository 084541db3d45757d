"""Utility modules for Violet FHIR."""
