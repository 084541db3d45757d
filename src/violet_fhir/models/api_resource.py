"""API resource database model.

The full record payload lives in the ``properties`` JSON column.
"""

import uuid
from typing import TYPE_CHECKING, Any, Dict

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from violet_fhir.models.base import BaseModel, as_utc
from violet_fhir.models.db_types import JSONB, UUID
from violet_fhir.models.records import Resource

if TYPE_CHECKING:
    from violet_fhir.models.api_namespace import ApiNamespace  # noqa: F401


class ApiResource(BaseModel):
    """Property-bag record scoped to a namespace."""

    __tablename__ = "api_resources"

    namespace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey("api_namespaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    properties: Mapped[Dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=dict
    )

    namespace: Mapped["ApiNamespace"] = relationship(
        "ApiNamespace", back_populates="resources"
    )

    def to_record(self) -> Resource:
        """Detach into a storage-independent record."""
        return Resource(
            id=self.id,
            namespace_id=self.namespace_id,
            properties=dict(self.properties or {}),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )
