"""Logging configuration for Violet FHIR."""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory

from violet_fhir.config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structured logging for the application."""
    settings = settings or get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            render_processor(settings),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=True,
    )


def render_processor(settings: Settings) -> Any:
    """Choose renderer based on configuration."""
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def get_logger(name: str) -> BoundLogger:
    """Get a configured logger instance."""
    bound_logger: BoundLogger = structlog.get_logger(name)
    return bound_logger


class RequestLogger:
    """Logs HTTP request/response pairs."""

    def __init__(self) -> None:
        """Initialize request logger."""
        self.logger = get_logger("violet_fhir.requests")

    def log_request(self, request: Any) -> Dict[str, Any]:
        """Log incoming request details."""
        request_data = {
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client_host": request.client.host if request.client else None,
        }

        self.logger.info("request_received", **request_data)
        return request_data

    def log_response(
        self, request_data: Dict[str, Any], status_code: int, duration: float
    ) -> None:
        """Log response details."""
        response_data = {
            **request_data,
            "status_code": status_code,
            "duration_ms": round(duration * 1000, 2),
        }

        if status_code >= 400:
            self.logger.warning("request_failed", **response_data)
        else:
            self.logger.info("request_completed", **response_data)


class AuditLogger:
    """Logger for the resource audit trail."""

    def __init__(self) -> None:
        """Initialize audit logger."""
        self.logger = get_logger("audit")

    def log_access(
        self,
        user_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        **details: Any,
    ) -> None:
        """Log resource access for audit trail."""
        self.logger.info(
            "resource_accessed",
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            **details,
        )

    def log_data_change(
        self,
        user_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        **details: Any,
    ) -> None:
        """Log data modifications for audit trail."""
        self.logger.info(
            "data_modified",
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            **details,
        )


audit_logger = AuditLogger()
request_logger = RequestLogger()
