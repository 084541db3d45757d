"""Audit trail middleware.

Every protocol request and every non-read administrative request leaves an
audit entry naming the principal, the target and the outcome.
"""

import re
import time
from typing import Any, Callable, Optional, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from violet_fhir.utils.logging import AuditLogger, audit_logger

ACTIONS = {
    "GET": "read",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


class AuditMiddleware(BaseHTTPMiddleware):
    """Record an audit event once the response status is known."""

    def __init__(
        self,
        app: Any,
        fhir_prefix: str = "/fhir",
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """Initialize audit middleware.

        Args:
            app: Wrapped ASGI application
            fhir_prefix: Path prefix of the protocol routes
            logger: Audit logger, the shared one by default
        """
        super().__init__(app)
        self.fhir_prefix = fhir_prefix.rstrip("/")
        self.audit_logger = logger or audit_logger
        self._target = re.compile(
            rf"^{re.escape(self.fhir_prefix)}/(\w+)(?:/([^/]+))?/?$"
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Pass the request through, then audit it."""
        start_time = time.perf_counter()
        response: Response = await call_next(request)

        if self.should_audit(request):
            resource_type, resource_id = self.target_of(request.url.path)
            principal = getattr(request.state, "principal", None)
            self.audit_logger.log_access(
                principal.user_id if principal else None,
                resource_type,
                resource_id,
                ACTIONS.get(request.method, "unknown"),
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
                query=dict(request.query_params),
            )
        return response

    def should_audit(self, request: Request) -> bool:
        """Protocol requests always; other paths only when they write."""
        return request.method != "GET" or self.is_protocol_path(request.url.path)

    def is_protocol_path(self, path: str) -> bool:
        """Whether ``path`` is under the protocol prefix."""
        return path == self.fhir_prefix or path.startswith(self.fhir_prefix + "/")

    def target_of(self, path: str) -> Tuple[str, Optional[str]]:
        """Resource type and id addressed by a protocol path."""
        match = self._target.match(path)
        if match is None:
            return "unknown", None
        return match.group(1), match.group(2)
