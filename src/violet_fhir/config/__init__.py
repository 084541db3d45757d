"""Configuration module for Violet FHIR."""

from violet_fhir.config.base import Settings
from violet_fhir.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
