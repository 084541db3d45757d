"""API namespace database model.

A namespace row defines one resource type (``Patient``, ``Observation``...)
and owns every resource stored under it.
"""

from typing import TYPE_CHECKING, Any, Dict, List

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from violet_fhir.models.base import BaseModel, as_utc
from violet_fhir.models.db_types import JSONB
from violet_fhir.models.records import Namespace

if TYPE_CHECKING:
    from violet_fhir.models.api_resource import ApiResource  # noqa: F401


class ApiNamespace(BaseModel):
    """Resource-type definition: name, version and metadata bag."""

    __tablename__ = "api_namespaces"

    name: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    version: Mapped[str] = mapped_column(String(50), nullable=False, default="1")
    properties: Mapped[Dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=dict
    )

    resources: Mapped[List["ApiResource"]] = relationship(
        "ApiResource",
        back_populates="namespace",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_record(self) -> Namespace:
        """Detach into a storage-independent record."""
        return Namespace(
            id=self.id,
            name=self.name,
            version=self.version,
            properties=dict(self.properties or {}),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<ApiNamespace(id={self.id}, name={self.name!r})>"
