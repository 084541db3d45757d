"""HTTP middleware for Violet FHIR."""

from violet_fhir.middleware.audit import AuditMiddleware
from violet_fhir.middleware.request_logging import RequestLoggingMiddleware

__all__ = ["AuditMiddleware", "RequestLoggingMiddleware"]
