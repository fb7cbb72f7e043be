from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "challenges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("creator_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("goal_target", sa.Float(), nullable=False),
        sa.Column("goal_unit", sa.String(length=16), nullable=False),
        sa.Column("goal_is_collective", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("goal_win_condition", sa.String(length=24), nullable=False, server_default="first_to_complete"),
        sa.Column("start_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("visibility", sa.String(length=16), nullable=False, server_default="public"),
        sa.Column("join_code", sa.String(length=12), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_participants", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("total_distance", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_activities", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_elevation", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_time", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_calories", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="upcoming"),
        sa.Column("rewards_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("allowed_activity_types", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("enable_comments", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("enable_leaderboard", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("enable_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("analytics_total_activities", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("goal_reached_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("goal_target > 0", name="ck_challenges_goal_positive"),
        sa.CheckConstraint("end_date > start_date", name="ck_challenges_window"),
        sa.CheckConstraint("max_participants >= 1", name="ck_challenges_capacity"),
    )
    op.create_index("ix_challenges_join_code", "challenges", ["join_code"], unique=True)
    op.create_index("ix_challenges_creator_id", "challenges", ["creator_id"])
    op.create_index("ix_challenges_status_dates", "challenges", ["status", "start_date", "end_date"])

    op.create_table(
        "participants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("joined_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("left_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("progress_distance", sa.Float(), nullable=False, server_default="0"),
        sa.Column("progress_activities", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("progress_elevation", sa.Float(), nullable=False, server_default="0"),
        sa.Column("progress_time", sa.Float(), nullable=False, server_default="0"),
        sa.Column("progress_calories", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rank", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "progress_distance >= 0 AND progress_activities >= 0 AND progress_elevation >= 0"
            " AND progress_time >= 0 AND progress_calories >= 0",
            name="ck_participants_progress_non_negative",
        ),
    )
    op.create_index("ix_participants_challenge_id", "participants", ["challenge_id"])
    op.create_index("ix_participants_user_id", "participants", ["user_id"])
    op.create_unique_constraint("uq_participant_unique", "participants", ["challenge_id", "user_id"])

    op.create_table(
        "participant_achievements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("participant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("participants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(length=24), nullable=False),
        sa.Column("value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("earned_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_participant_achievements_participant_id", "participant_achievements", ["participant_id"])

    op.create_table(
        "challenge_growth_points",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recorded_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
    )
    op.create_index("ix_challenge_growth_points_challenge_id", "challenge_growth_points", ["challenge_id"])

    op.create_table(
        "challenge_invites",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("invited_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_challenge_invites_challenge_id", "challenge_invites", ["challenge_id"])
    op.create_index("ix_challenge_invites_user_id", "challenge_invites", ["user_id"])
    op.create_unique_constraint("uq_invite_once_per_user", "challenge_invites", ["challenge_id", "user_id"])

def downgrade() -> None:
    op.drop_table("challenge_invites")
    op.drop_table("challenge_growth_points")
    op.drop_table("participant_achievements")
    op.drop_constraint("uq_participant_unique", "participants", type_="unique")
    op.drop_index("ix_participants_user_id", table_name="participants")
    op.drop_index("ix_participants_challenge_id", table_name="participants")
    op.drop_table("participants")
    op.drop_index("ix_challenges_status_dates", table_name="challenges")
    op.drop_index("ix_challenges_creator_id", table_name="challenges")
    op.drop_index("ix_challenges_join_code", table_name="challenges")
    op.drop_table("challenges")
