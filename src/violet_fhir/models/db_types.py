"""Database type compatibility layer for PostgreSQL and SQLite."""

import uuid
from typing import Any, Optional, Type

from sqlalchemy import CHAR, JSON, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB as PostgreSQLJSONB
from sqlalchemy.dialects.postgresql import UUID as PostgreSQLUUID

# JSONB on PostgreSQL, plain JSON everywhere else
JSONB = JSON().with_variant(PostgreSQLJSONB(), "postgresql")


class UUID(TypeDecorator):
    """UUID type that degrades to CHAR(36) outside PostgreSQL."""

    impl = CHAR(36)
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        """Use the native UUID type where the dialect has one."""
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgreSQLUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[Any]:
        """Process value before binding to database."""
        if value is None:
            return None
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value: Any, dialect: Any) -> Optional[uuid.UUID]:
        """Process value when loading from database."""
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))

    @property
    def python_type(self) -> Type[uuid.UUID]:
        """Python type."""
        return uuid.UUID
