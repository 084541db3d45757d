"""Initial migration - namespaces and resources

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

JSONB = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
UUID = sa.CHAR(36).with_variant(postgresql.UUID(as_uuid=True), "postgresql")


def upgrade() -> None:
    """Create namespace and resource tables with their indexes."""
    op.create_table(
        "api_namespaces",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("version", sa.String(50), nullable=False, server_default="1"),
        sa.Column("properties", JSONB, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_api_namespaces_name", "api_namespaces", ["name"], unique=True)
    op.create_index("ix_api_namespaces_created_at", "api_namespaces", ["created_at"])

    op.create_table(
        "api_resources",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column(
            "namespace_id",
            UUID,
            sa.ForeignKey("api_namespaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("properties", JSONB, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_api_resources_namespace_id", "api_resources", ["namespace_id"])
    op.create_index("ix_api_resources_created_at", "api_resources", ["created_at"])

    # Containment searches on PostgreSQL
    if op.get_bind().dialect.name == "postgresql":
        op.create_index(
            "ix_api_resources_properties",
            "api_resources",
            ["properties"],
            postgresql_using="gin",
        )


def downgrade() -> None:
    """Drop resource and namespace tables"""
    if op.get_bind().dialect.name == "postgresql":
        op.drop_index("ix_api_resources_properties", table_name="api_resources")
    op.drop_index("ix_api_resources_created_at", table_name="api_resources")
    op.drop_index("ix_api_resources_namespace_id", table_name="api_resources")
    op.drop_table("api_resources")
    op.drop_index("ix_api_namespaces_created_at", table_name="api_namespaces")
    op.drop_index("ix_api_namespaces_name", table_name="api_namespaces")
    op.drop_table("api_namespaces")
