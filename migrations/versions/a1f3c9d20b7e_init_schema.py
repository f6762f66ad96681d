"""init schema: profiles, likes, feedback

Revision ID: a1f3c9d20b7e
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1f3c9d20b7e"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String()),
        sa.Column("full_name", sa.String(), nullable=False, server_default=""),
        sa.Column(
            "plan",
            sa.Enum("free", "paid", name="profile_plan"),
            nullable=False,
            server_default="free",
        ),
        sa.Column("subscription_status", sa.String()),
        sa.Column("billing_interval", sa.Enum("month", "year", name="billing_interval")),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("usage_limit", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("last_extraction", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("usage_count >= 0", name="ck_profiles_usage_count"),
        sa.CheckConstraint("usage_limit > 0", name="ck_profiles_usage_limit"),
    )
    op.create_table(
        "app_likes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("user_email", sa.String()),
        sa.Column("liked", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "app_feedback",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("user_email", sa.String()),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_app_feedback_user_id", "app_feedback", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_app_feedback_user_id", table_name="app_feedback")
    op.drop_table("app_feedback")
    op.drop_table("app_likes")
    op.drop_table("profiles")
    sa.Enum(name="billing_interval").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="profile_plan").drop(op.get_bind(), checkfirst=True)
