"""initial schema: martyrs, tributes, admins, media gallery, statistics, audit log

Revision ID: 0001_initial_schema
Revises:
Create Date: 2024-06-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _missing(table: str) -> bool:
    """Tables an imported database already has are adopted as they are."""
    return not sa.inspect(op.get_bind()).has_table(table)


def upgrade():
    if _missing("admins"):
        op.create_table(
            "admins",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(100), nullable=False),
            sa.Column("email", sa.String(255), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("role", sa.String(20), nullable=False, server_default="admin"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_admins_id", "admins", ["id"])
        op.create_index("ix_admins_username", "admins", ["username"], unique=True)
        op.create_index("ix_admins_email", "admins", ["email"], unique=True)

    if _missing("martyrs"):
        op.create_table(
            "martyrs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name_ar", sa.String(255), nullable=False),
            sa.Column("name_en", sa.String(255), nullable=False),
            sa.Column("date_of_martyrdom", sa.Date(), nullable=False),
            sa.Column("place_of_martyrdom", sa.String(500), nullable=False),
            sa.Column("education_level", sa.String(50), nullable=False),
            sa.Column("occupation", sa.String(255), nullable=False),
            sa.Column("university_name", sa.String(255), nullable=True),
            sa.Column("faculty", sa.String(255), nullable=True),
            sa.Column("department", sa.String(255), nullable=True),
            sa.Column("school_state", sa.String(255), nullable=True),
            sa.Column("school_locality", sa.String(255), nullable=True),
            sa.Column("spouse", sa.String(255), nullable=True),
            sa.Column("children", sa.Integer(), nullable=True),
            sa.Column("age", sa.Integer(), nullable=True),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("photo_url", sa.String(512), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
            sa.Column("created_by", sa.Integer(), sa.ForeignKey("admins.id", ondelete="SET NULL"), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_martyrs_status"),
        )
        for col in ("id", "name_ar", "name_en", "date_of_martyrdom", "place_of_martyrdom", "education_level", "status", "created_at"):
            op.create_index(f"ix_martyrs_{col}", "martyrs", [col])

    if _missing("tributes"):
        op.create_table(
            "tributes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("martyr_id", sa.Integer(), sa.ForeignKey("martyrs.id", ondelete="CASCADE"), nullable=False),
            sa.Column("visitor_name", sa.String(255), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("ip_address", sa.String(45), nullable=True),
            sa.Column("approved_by", sa.Integer(), sa.ForeignKey("admins.id", ondelete="SET NULL"), nullable=True),
            *_timestamps(),
        )
        for col in ("id", "martyr_id", "is_approved", "ip_address", "created_at"):
            op.create_index(f"ix_tributes_{col}", "tributes", [col])

    if _missing("media_gallery"):
        op.create_table(
            "media_gallery",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("file_url", sa.String(512), nullable=False),
            sa.Column("file_type", sa.String(20), nullable=False, server_default="image"),
            sa.Column("category", sa.String(100), nullable=True),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        for col in ("id", "category", "is_public"):
            op.create_index(f"ix_media_gallery_{col}", "media_gallery", [col])

    if _missing("statistics"):
        op.create_table(
            "statistics",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("stat_type", sa.String(100), nullable=False, unique=True),
            sa.Column("stat_value", sa.JSON(), nullable=False),
            sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_statistics_id", "statistics", ["id"])

    if _missing("admin_logs"):
        op.create_table(
            "admin_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("admin_id", sa.Integer(), sa.ForeignKey("admins.id", ondelete="SET NULL"), nullable=True),
            sa.Column("action", sa.String(30), nullable=False),
            sa.Column("target_type", sa.String(30), nullable=True),
            sa.Column("target_id", sa.Integer(), nullable=True),
            sa.Column("detail", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        for col in ("id", "admin_id", "action", "target_type", "target_id"):
            op.create_index(f"ix_admin_logs_{col}", "admin_logs", [col])


def downgrade():
    op.drop_table("admin_logs")
    op.drop_table("statistics")
    op.drop_table("media_gallery")
    op.drop_table("tributes")
    op.drop_table("martyrs")
    op.drop_table("admins")
