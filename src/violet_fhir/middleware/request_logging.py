"""Request/response logging middleware."""

import time
from typing import Any, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from violet_fhir.utils.logging import request_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its status and duration."""

    def __init__(self, app: Any) -> None:
        """Initialize request logging middleware."""
        super().__init__(app)
        self.request_logger = request_logger

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Log the request, then its response."""
        request_data = self.request_logger.log_request(request)
        start_time = time.perf_counter()

        response: Response = await call_next(request)

        self.request_logger.log_response(
            request_data, response.status_code, time.perf_counter() - start_time
        )
        return response
