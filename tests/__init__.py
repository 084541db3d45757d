"""Violet FHIR Test Suite.

Unit tests run against the in-memory backend and a file-backed SQLite
database; both backends are expected to behave identically.
"""

__version__ = "1.0.0"
