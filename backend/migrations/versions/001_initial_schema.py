"""Initial schema: 5 tables matching db.py models.

Revision ID: 001
Revises: (none)
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ENUM, UUID

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

PROJECT_STATUS = ENUM(
    "INTAKE_NEW",
    "AWAITING_PAYMENT",
    "PAID",
    "IN_QUEUE",
    "GENERATING",
    "REVIEW_READY",
    "COMPLETED",
    name="project_status",
    create_type=False,
)
USER_ROLE = ENUM("CLIENT", "ADMIN", name="user_role", create_type=False)
ASSET_TYPE = ENUM("REFERENCE", "GENERATED", name="asset_type", create_type=False)
ASSET_STATUS = ENUM(
    "PENDING", "READY", "REVISION_REQUESTED", "APPROVED", name="asset_status", create_type=False
)
NOTIFICATION_TYPE = ENUM(
    "PAYMENT_REQUESTED",
    "PAYMENT_CONFIRMED",
    "ASSETS_READY",
    "REVISION_SUBMITTED",
    "PROJECT_COMPLETED",
    name="notification_type",
    create_type=False,
)
_ENUMS = (PROJECT_STATUS, USER_ROLE, ASSET_TYPE, ASSET_STATUS, NOTIFICATION_TYPE)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in _ENUMS:
        enum_type.create(bind, checkfirst=True)

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True, unique=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("role", USER_ROLE, server_default="CLIENT", nullable=False),
        _created_at(),
    )

    # --- projects ---
    op.create_table(
        "projects",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_type", sa.String(100), nullable=False),
        sa.Column("creative_brief", sa.Text(), nullable=False),
        sa.Column("status", PROJECT_STATUS, server_default="INTAKE_NEW", nullable=False),
        sa.Column("package_type", sa.String(50), nullable=True),
        sa.Column("payment_link_url", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_projects_user_status", "projects", ["user_id", "status"])

    # --- project_status_history ---
    op.create_table(
        "project_status_history",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "project_id",
            UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_status", PROJECT_STATUS, nullable=True),
        sa.Column("to_status", PROJECT_STATUS, nullable=False),
        sa.Column(
            "changed_by_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index(
        "idx_status_history_project", "project_status_history", ["project_id", "created_at"]
    )

    # --- assets ---
    op.create_table(
        "assets",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "project_id",
            UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", ASSET_TYPE, nullable=False),
        sa.Column("status", ASSET_STATUS, server_default="PENDING", nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("file_key", sa.String(500), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("revision_notes", sa.Text(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_assets_project_type", "assets", ["project_id", "type"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "project_id",
            UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("type", NOTIFICATION_TYPE, nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _created_at(),
    )
    op.create_index("idx_notifications_user_read", "notifications", ["user_id", "read"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("assets")
    op.drop_table("project_status_history")
    op.drop_table("projects")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in reversed(_ENUMS):
        enum_type.drop(bind, checkfirst=True)
