"""LEAPS users, submissions, points ledger, badges and Kajabi receipts.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ACTIVITY_CODES = ("LEARN", "EXPLORE", "AMPLIFY", "PRESENT", "SHINE")
SUBMISSION_STATUSES = ("PENDING", "APPROVED", "REJECTED", "REVOKED")
SUBMISSION_VISIBILITIES = ("PUBLIC", "PRIVATE")
LEDGER_SOURCES = ("MANUAL", "WEBHOOK", "FORM")
KAJABI_EVENT_STATUSES = (
    "RECEIVED",
    "PROCESSED",
    "DUPLICATE",
    "IGNORED",
    "QUEUED_UNMATCHED",
    "STUDENT",
    "FAILED",
)

BADGES = (
    {
        "code": "STARTER",
        "name": "Starter",
        "description": "Complete both Elevate AI Learn courses",
        "criteria": {"learn_tags": ["elevate-ai-1-completed", "elevate-ai-2-completed"]},
    },
    {
        "code": "IN_CLASS_INNOVATOR",
        "name": "In-Class Innovator",
        "description": "Have an Explore submission approved",
        "criteria": {"activity": "EXPLORE", "approved": 1},
    },
    {
        "code": "COMMUNITY_VOICE",
        "name": "Community Voice",
        "description": "Have a Present submission approved",
        "criteria": {"activity": "PRESENT", "approved": 1},
    },
)


def upgrade() -> None:
    uuid_type = sa.dialects.postgresql.UUID(as_uuid=True)
    activity_code = sa.Enum(*ACTIVITY_CODES, name="activity_code_enum")

    op.create_table(
        "users",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("handle", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="PARTICIPANT"),
        sa.Column("user_type", sa.String(length=16), nullable=False, server_default="EDUCATOR"),
        sa.Column("school", sa.String(), nullable=True),
        sa.Column("cohort", sa.String(), nullable=True),
        sa.Column("kajabi_contact_id", sa.String(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "submissions",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("user_id", uuid_type, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("activity_code", activity_code, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*SUBMISSION_STATUSES, name="submission_status_enum"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column(
            "visibility",
            sa.Enum(*SUBMISSION_VISIBILITIES, name="submission_visibility_enum"),
            nullable=False,
            server_default="PRIVATE",
        ),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("reviewer_id", sa.String(length=64), nullable=True),
        sa.Column("review_note", sa.Text(), nullable=True),
        sa.Column("approval_org_timezone", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(
        "ix_submissions_user_activity_status",
        "submissions",
        ["user_id", "activity_code", "status"],
    )

    op.create_table(
        "points_ledger",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("external_event_id", sa.String(length=255), nullable=False, unique=True),
        sa.Column("user_id", uuid_type, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("activity_code", sa.Enum(*ACTIVITY_CODES, name="activity_code_enum", create_type=False), nullable=False),
        sa.Column("source", sa.Enum(*LEDGER_SOURCES, name="ledger_source_enum"), nullable=False),
        sa.Column("external_source", sa.String(length=64), nullable=True),
        sa.Column("delta_points", sa.Integer(), nullable=False),
        sa.Column("event_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_points_ledger_user_event_time", "points_ledger", ["user_id", "event_time"])

    badges = op.create_table(
        "badges",
        sa.Column("code", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("criteria", sa.JSON(), nullable=False),
        sa.Column("icon_url", sa.String(), nullable=True),
    )

    op.create_table(
        "earned_badges",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("user_id", uuid_type, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_code", sa.String(length=64), sa.ForeignKey("badges.code"), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("user_id", "badge_code", name="uq_earned_badges_user_badge"),
    )

    op.create_table(
        "learn_tag_grants",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("user_id", uuid_type, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tag_name", sa.String(length=128), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("user_id", "tag_name", name="uq_learn_tag_grants_user_tag"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("target_id", sa.String(length=64), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_audit_log_target_id", "audit_log", ["target_id"])

    op.create_table(
        "kajabi_events",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("external_event_id", sa.String(length=255), nullable=False, unique=True),
        sa.Column("event_type", sa.String(length=64), nullable=True),
        sa.Column("tag_name_raw", sa.String(length=255), nullable=True),
        sa.Column("tag_name_norm", sa.String(length=255), nullable=True),
        sa.Column("contact_id", sa.String(length=128), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("event_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*KAJABI_EVENT_STATUSES, name="kajabi_event_status_enum"),
            nullable=False,
            server_default="RECEIVED",
        ),
        sa.Column("user_id", uuid_type, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("points_awarded", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("replay_attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_kajabi_events_email", "kajabi_events", ["email"])
    op.create_index("ix_kajabi_events_status", "kajabi_events", ["status"])

    op.bulk_insert(badges, [dict(badge, icon_url=None) for badge in BADGES])


def downgrade() -> None:
    op.drop_index("ix_kajabi_events_status", table_name="kajabi_events")
    op.drop_index("ix_kajabi_events_email", table_name="kajabi_events")
    op.drop_table("kajabi_events")
    op.drop_index("ix_audit_log_target_id", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("learn_tag_grants")
    op.drop_table("earned_badges")
    op.drop_table("badges")
    op.drop_index("ix_points_ledger_user_event_time", table_name="points_ledger")
    op.drop_table("points_ledger")
    op.drop_index("ix_submissions_user_activity_status", table_name="submissions")
    op.drop_table("submissions")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_name in (
        "kajabi_event_status_enum",
        "ledger_source_enum",
        "submission_visibility_enum",
        "submission_status_enum",
        "activity_code_enum",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
