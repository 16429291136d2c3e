"""Initial schema for synced bookings and integration state.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

_STATUS = sa.Enum(
    "active",
    "completed",
    "cancelled",
    "no_show",
    name="eventstatus",
    native_enum=False,
    length=16,
)


def _platform() -> sa.Enum:
    return sa.Enum("calendly", name="platform", native_enum=False, length=32)


def upgrade() -> None:
    op.create_table(
        "calendly_event",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("category_id", sa.String(), nullable=False),
        sa.Column("category_name", sa.String(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", _STATUS, nullable=False),
        sa.Column("participant_name", sa.String(), nullable=True),
        sa.Column("participant_email", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_calendly_event"),
        sa.UniqueConstraint(
            "project_id", "external_id", name="uq_calendly_event_project_external"
        ),
    )
    op.create_index(
        "ix_calendly_event_project_status",
        "calendly_event",
        ["project_id", "status", "scheduled_at"],
    )
    op.create_index(
        "ix_calendly_event_project_created",
        "calendly_event",
        ["project_id", "created_at"],
    )

    op.create_table(
        "event_type_mapping",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("category_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_event_type_mapping"),
        sa.UniqueConstraint(
            "project_id", "category_id", name="uq_event_type_mapping_project_category"
        ),
    )

    op.create_table(
        "project_integration",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("platform", _platform(), nullable=False),
        sa.Column("is_connected", sa.Boolean(), nullable=False),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.PrimaryKeyConstraint("id", name="pk_project_integration"),
        sa.UniqueConstraint(
            "project_id", "platform", name="uq_project_integration_project_platform"
        ),
    )

    op.create_table(
        "integration_credentials",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("platform", _platform(), nullable=False),
        sa.Column("access_token", sa.String(), nullable=True),
        sa.Column("user_uri", sa.String(), nullable=True),
        sa.Column("organization_uri", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_integration_credentials"),
        sa.UniqueConstraint(
            "project_id", "platform", name="uq_integration_credentials_project_platform"
        ),
    )


def downgrade() -> None:
    op.drop_table("integration_credentials")
    op.drop_table("project_integration")
    op.drop_table("event_type_mapping")
    op.drop_index("ix_calendly_event_project_created", table_name="calendly_event")
    op.drop_index("ix_calendly_event_project_status", table_name="calendly_event")
    op.drop_table("calendly_event")
