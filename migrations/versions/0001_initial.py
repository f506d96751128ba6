"""initial conversation schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profiles, likes, conversations, matches and messages."""
    op.create_table(
        "user_profile",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("gender", sa.String(length=32), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "user_like",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("from_user_id", sa.String(length=36), nullable=False),
        sa.Column("to_user_id", sa.String(length=36), nullable=False),
        sa.Column("is_like", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["from_user_id"], ["user_profile.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_user_id"], ["user_profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("from_user_id", "to_user_id", name="uq_user_like_pair"),
    )

    op.create_table(
        "conversation",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user1_id", sa.String(length=36), nullable=False),
        sa.Column("user2_id", sa.String(length=36), nullable=False),
        sa.Column("text_message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reveal_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("chapter1_unlocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("chapter2_unlocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("chapter3_unlocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("chapter4_unlocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user1_id"], ["user_profile.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user2_id"], ["user_profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user1_id", "user2_id", name="uq_conversation_pair"),
        sa.CheckConstraint("user1_id < user2_id", name="ck_conversation_pair_order"),
        sa.CheckConstraint("reveal_level BETWEEN 0 AND 4", name="ck_conversation_reveal_level"),
    )

    op.create_table(
        "user_match",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user1_id", sa.String(length=36), nullable=False),
        sa.Column("user2_id", sa.String(length=36), nullable=False),
        sa.Column("conversation_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user1_id"], ["user_profile.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user2_id"], ["user_profile.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversation.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user1_id", "user2_id", name="uq_match_pair"),
        sa.UniqueConstraint("conversation_id"),
    )

    op.create_table(
        "message",
        sa.Column("id", sa.String(length=80), nullable=False),
        sa.Column("conversation_id", sa.String(length=36), nullable=False),
        sa.Column("sender_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("audio_url", sa.Text(), nullable=True),
        sa.Column("audio_duration", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversation.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["user_profile.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "(type = 'VOICE' AND audio_url IS NOT NULL AND audio_duration > 0)"
            " OR (type != 'VOICE' AND content IS NOT NULL)",
            name="ck_message_payload",
        ),
    )
    op.create_index(
        "ix_message_conversation_created",
        "message",
        ["conversation_id", "created_at"],
    )


def downgrade() -> None:
    """Drop every table created by this revision."""
    op.drop_index("ix_message_conversation_created", table_name="message")
    op.drop_table("message")
    op.drop_table("user_match")
    op.drop_table("conversation")
    op.drop_table("user_like")
    op.drop_table("user_profile")
