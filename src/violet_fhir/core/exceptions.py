"""Core Exceptions Module.

Typed errors raised by the namespace/resource layer. Each carries the HTTP
status and error code the API boundary renders; the boundary decides the body
shape (OperationOutcome for protocol paths, a generic error document elsewhere).
"""

from typing import List, Optional, Sequence


class VioletFHIRError(Exception):
    """Base exception for all Violet FHIR errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "An error occurred"):
        """Initialize error with a caller-visible message."""
        super().__init__(message)
        self.message = message


class NotFoundError(VioletFHIRError):
    """Raised when a namespace or resource id does not exist."""

    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Resource not found"):
        """Initialize not found error."""
        super().__init__(message)


class ValidationError(VioletFHIRError):
    """Raised on structural schema failures and type mismatches."""

    status_code = 400
    code = "validation_error"

    def __init__(
        self, message: str = "Validation failed", errors: Optional[Sequence[str]] = None
    ):
        """Initialize validation error with the individual violations."""
        super().__init__(message)
        self.errors: List[str] = list(errors or [])


class ConflictError(VioletFHIRError):
    """Raised when a unique namespace name is already taken."""

    status_code = 409
    code = "conflict"

    def __init__(self, message: str = "Resource already exists"):
        """Initialize conflict error."""
        super().__init__(message)


class UnauthorizedError(VioletFHIRError):
    """Raised when a credential is missing or invalid."""

    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        """Initialize unauthorized error."""
        super().__init__(message)


class ForbiddenError(UnauthorizedError):
    """Raised when an authenticated principal lacks the required role."""

    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Insufficient permissions"):
        """Initialize forbidden error."""
        super().__init__(message)


class StorageError(VioletFHIRError):
    """Raised when the storage engine fails for reasons other than uniqueness."""


class UniqueViolationError(StorageError):
    """Raised by a storage backend when a unique constraint rejects a write."""

    status_code = 409
    code = "conflict"
