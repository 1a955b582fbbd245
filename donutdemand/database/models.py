"""
donutdemand.database.models — SQLAlchemy 2.0 Data Models
========================================================

Every piece of durable workflow state lives in one of these tables.
Nothing in the bot holds the only copy of truth in memory.

Tables:
- inviter_stats      — Per-inviter join / rejoin / left / manual counters
- member_inviters    — Last credited inviter for each member
- invite_owners      — Manual invite-code → credited-user bindings
- invited_members    — History of who each inviter brought in
- ledger_backups     — Single-slot full ledger snapshot (backup / restore)
- guild_settings     — Per-guild staff roles, channels, blacklist, webhook
- panel_configs      — Per-guild ticket panel configuration
- giveaways          — Giveaway records keyed by announcement message id
- giveaway_entries   — Entry set for each giveaway
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all DonutDemand ORM models."""


# ---------------------------------------------------------------------------
# InviterStats — per-inviter counters
# ---------------------------------------------------------------------------
class InviterStats(Base):
    """Raw counters for one inviter.

    Credited invites are always derived (see
    :func:`donutdemand.engine.attribution.credited_invites`), never stored.
    """
    __tablename__ = "inviter_stats"

    inviter_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    joins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rejoins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    left: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    manual: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<InviterStats id={self.inviter_id} joins={self.joins} "
            f"rejoins={self.rejoins} left={self.left} manual={self.manual}>"
        )


# ---------------------------------------------------------------------------
# MemberInviter — member → last credited inviter
# ---------------------------------------------------------------------------
class MemberInviter(Base):
    __tablename__ = "member_inviters"

    member_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    inviter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_member_inviters_inviter", "inviter_id"),
    )

    def __repr__(self) -> str:
        return f"<MemberInviter member={self.member_id} inviter={self.inviter_id}>"


# ---------------------------------------------------------------------------
# InviteOwner — manual code → credited user binding
# ---------------------------------------------------------------------------
class InviteOwner(Base):
    __tablename__ = "invite_owners"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_invite_owners_owner", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<InviteOwner code={self.code!r} owner={self.owner_id}>"


# ---------------------------------------------------------------------------
# InvitedMember — inviter's history of brought-in members
# ---------------------------------------------------------------------------
class InvitedMember(Base):
    __tablename__ = "invited_members"

    inviter_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    member_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    invite_code: Mapped[str | None] = mapped_column(String(64), default=None)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    left_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    def __repr__(self) -> str:
        return (
            f"<InvitedMember inviter={self.inviter_id} member={self.member_id} "
            f"active={self.active}>"
        )


# ---------------------------------------------------------------------------
# LedgerBackup — single-slot full ledger snapshot
# ---------------------------------------------------------------------------
class LedgerBackup(Base):
    """Exported copy of the four ledger maps.

    Only one slot (``id = 1``) is used; a new backup overwrites it.
    """
    __tablename__ = "ledger_backups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False)
    created_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<LedgerBackup id={self.id} created_at={self.created_at}>"


# ---------------------------------------------------------------------------
# GuildSettings — lazily created per guild
# ---------------------------------------------------------------------------
class GuildSettings(Base):
    __tablename__ = "guild_settings"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    staff_role_ids: Mapped[list] = mapped_column(JSONB, default=list)
    join_log_channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    feedback_channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    claims_channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    customer_role_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    invite_blacklist: Mapped[list] = mapped_column(JSONB, default=list)
    webhook_url: Mapped[str | None] = mapped_column(Text, default=None)
    automod_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    automod_bypass_role_name: Mapped[str] = mapped_column(
        String(100), default="automod"
    )
    suspended: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<GuildSettings guild={self.guild_id} suspended={self.suspended}>"


# ---------------------------------------------------------------------------
# PanelConfig — validated ticket panel JSON
# ---------------------------------------------------------------------------
class PanelConfig(Base):
    __tablename__ = "panel_configs"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    config: Mapped[dict] = mapped_column(JSONB, nullable=False)
    updated_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<PanelConfig guild={self.guild_id}>"


# ---------------------------------------------------------------------------
# Giveaway — keyed by announcement message id
# ---------------------------------------------------------------------------
class Giveaway(Base):
    __tablename__ = "giveaways"

    message_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    prize: Mapped[str] = mapped_column(String(256), nullable=False)
    winner_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    host_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_invites: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_winners: Mapped[list] = mapped_column(JSONB, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    entries: Mapped[list[GiveawayEntry]] = relationship(
        back_populates="giveaway",
        cascade="all, delete-orphan",
        order_by="GiveawayEntry.entered_at",
    )

    __table_args__ = (
        Index("ix_giveaways_pending", "ended", "ends_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Giveaway msg={self.message_id} prize={self.prize!r} "
            f"ended={self.ended}>"
        )


class GiveawayEntry(Base):
    __tablename__ = "giveaway_entries"

    message_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("giveaways.message_id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    entered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    giveaway: Mapped[Giveaway] = relationship(back_populates="entries")

    def __repr__(self) -> str:
        return f"<GiveawayEntry msg={self.message_id} user={self.user_id}>"
