"""Initial schema: invite ledger, guild settings, panels, giveaways

Revision ID: 4c2d7e91a0b3
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "4c2d7e91a0b3"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- Attribution ledger ---
    op.create_table(
        "inviter_stats",
        sa.Column("inviter_id", sa.BigInteger(), primary_key=True),
        sa.Column("joins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rejoins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("manual", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "member_inviters",
        sa.Column("member_id", sa.BigInteger(), primary_key=True),
        sa.Column("inviter_id", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_member_inviters_inviter", "member_inviters", ["inviter_id"])
    op.create_table(
        "invite_owners",
        sa.Column("code", sa.String(64), primary_key=True),
        sa.Column("owner_id", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_invite_owners_owner", "invite_owners", ["owner_id"])
    op.create_table(
        "invited_members",
        sa.Column("inviter_id", sa.BigInteger(), primary_key=True),
        sa.Column("member_id", sa.BigInteger(), primary_key=True),
        sa.Column("invite_code", sa.String(64), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "ledger_backups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("snapshot", postgresql.JSONB(), nullable=False),
        sa.Column("created_by", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- Guild configuration ---
    op.create_table(
        "guild_settings",
        sa.Column("guild_id", sa.BigInteger(), primary_key=True),
        sa.Column("staff_role_ids", postgresql.JSONB(), server_default="[]"),
        sa.Column("join_log_channel_id", sa.BigInteger(), nullable=True),
        sa.Column("feedback_channel_id", sa.BigInteger(), nullable=True),
        sa.Column("claims_channel_id", sa.BigInteger(), nullable=True),
        sa.Column("customer_role_id", sa.BigInteger(), nullable=True),
        sa.Column("invite_blacklist", postgresql.JSONB(), server_default="[]"),
        sa.Column("webhook_url", sa.Text(), nullable=True),
        sa.Column("automod_enabled", sa.Boolean(), server_default=sa.false()),
        sa.Column("automod_bypass_role_name", sa.String(100), server_default="automod"),
        sa.Column("suspended", sa.Boolean(), server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "panel_configs",
        sa.Column("guild_id", sa.BigInteger(), primary_key=True),
        sa.Column("config", postgresql.JSONB(), nullable=False),
        sa.Column("updated_by", sa.BigInteger(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- Giveaways ---
    op.create_table(
        "giveaways",
        sa.Column("message_id", sa.BigInteger(), primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("channel_id", sa.BigInteger(), nullable=False),
        sa.Column("prize", sa.String(256), nullable=False),
        sa.Column("winner_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("host_id", sa.BigInteger(), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("min_invites", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_winners", postgresql.JSONB(), server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_giveaways_pending", "giveaways", ["ended", "ends_at"])
    op.create_table(
        "giveaway_entries",
        sa.Column(
            "message_id",
            sa.BigInteger(),
            sa.ForeignKey("giveaways.message_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column("entered_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("giveaway_entries")
    op.drop_index("ix_giveaways_pending", table_name="giveaways")
    op.drop_table("giveaways")
    op.drop_table("panel_configs")
    op.drop_table("guild_settings")
    op.drop_table("ledger_backups")
    op.drop_table("invited_members")
    op.drop_index("ix_invite_owners_owner", table_name="invite_owners")
    op.drop_table("invite_owners")
    op.drop_index("ix_member_inviters_inviter", table_name="member_inviters")
    op.drop_table("member_inviters")
    op.drop_table("inviter_stats")
