"""Initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "organizers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("telegram_id", sa.BigInteger(), nullable=False),
        sa.Column("telegram_username", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("active_session_id", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_organizers_telegram_id", "organizers", ["telegram_id"], unique=True)

    op.create_table(
        "draw_sessions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        sa.Column("event_name", sa.String(), nullable=False, server_default=""),
        sa.Column("event_date", sa.Date(), nullable=True),
        sa.Column("budget_amount", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),
        sa.Column("step", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("message_template", sa.Text(), nullable=True),
        sa.Column("is_saved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_assignment_seed", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organizer_id"], ["organizers.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_draw_sessions_organizer_id", "draw_sessions", ["organizer_id"])

    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["draw_sessions.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("session_id", "email", name="uq_members_session_email"),
    )
    op.create_index("ix_members_session_id", "members", ["session_id"])

    op.create_table(
        "member_exclusions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("giver_id", sa.Integer(), nullable=False),
        sa.Column("receiver_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["giver_id"], ["members.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["receiver_id"], ["members.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("giver_id", "receiver_id", name="uq_member_exclusions_pair"),
    )
    op.create_index("ix_member_exclusions_giver_id", "member_exclusions", ["giver_id"])

    op.create_table(
        "pairings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_id", sa.String(length=32), nullable=False),
        sa.Column("giver_id", sa.Integer(), nullable=False),
        sa.Column("receiver_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["draw_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["giver_id"], ["members.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["receiver_id"], ["members.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("session_id", "giver_id", name="uq_pairings_session_giver"),
    )


def downgrade() -> None:
    op.drop_table("pairings")
    op.drop_index("ix_member_exclusions_giver_id", table_name="member_exclusions")
    op.drop_table("member_exclusions")
    op.drop_index("ix_members_session_id", table_name="members")
    op.drop_table("members")
    op.drop_index("ix_draw_sessions_organizer_id", table_name="draw_sessions")
    op.drop_table("draw_sessions")
    op.drop_index("ix_organizers_telegram_id", table_name="organizers")
    op.drop_table("organizers")
