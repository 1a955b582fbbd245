"""
donutdemand.services.ledger_service — Attribution Ledger Persistence
====================================================================

Owns the four ledger tables (``inviter_stats``, ``member_inviters``,
``invite_owners``, ``invited_members``) plus the backup slot.  Callable
from both cogs and workflows; every function opens its own session and
commits atomically.

Credit is never stored: :func:`credit_for` derives it from the counters
and the guild blacklist on every read, so un-blacklisting restores the
original count untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from donutdemand.database.engine import get_session
from donutdemand.database.models import (
    InvitedMember,
    InviteOwner,
    InviterStats,
    LedgerBackup,
    MemberInviter,
)
from donutdemand.engine.attribution import JoinStatus, credited_invites
from donutdemand.errors import ConsistencyViolation
from donutdemand.services.settings_service import get_or_create_settings, is_blacklisted

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

BACKUP_SLOT = 1


@dataclass(frozen=True, slots=True)
class JoinResult:
    """Outcome of crediting one member join."""

    status: JoinStatus
    inviter_id: int | None = None
    credited: int = 0
    rejoin: bool = False


@dataclass(frozen=True, slots=True)
class InvitedRecord:
    member_id: int
    invite_code: str | None
    joined_at: datetime | None
    active: bool
    left_at: datetime | None


@dataclass(frozen=True, slots=True)
class LedgerCounts:
    inviters: int
    members: int
    owners: int
    invited: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _now() -> datetime:
    return datetime.now(UTC)


def get_or_create_stats(session: Session, inviter_id: int) -> InviterStats:
    stats = session.get(InviterStats, inviter_id)
    if stats is None:
        stats = InviterStats(inviter_id=inviter_id, joins=0, rejoins=0, left=0, manual=0)
        session.add(stats)
        session.flush()
    return stats


def _credit(session: Session, guild_id: int, user_id: int) -> int:
    stats = session.get(InviterStats, user_id)
    if stats is None:
        return 0
    return credited_invites(
        stats.joins, stats.rejoins, stats.left, stats.manual,
        blacklisted=is_blacklisted(session, guild_id, user_id),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def credit_for(engine: Engine, guild_id: int, user_id: int) -> int:
    """Invites currently credited to *user_id* (0 when blacklisted)."""
    with Session(engine) as session:
        return _credit(session, guild_id, user_id)


def get_stats(engine: Engine, user_id: int) -> dict[str, int]:
    """Raw counters for *user_id* (all zero if never seen)."""
    with Session(engine) as session:
        stats = session.get(InviterStats, user_id)
        if stats is None:
            return {"joins": 0, "rejoins": 0, "left": 0, "manual": 0}
        return {
            "joins": stats.joins,
            "rejoins": stats.rejoins,
            "left": stats.left,
            "manual": stats.manual,
        }


def invited_members(engine: Engine, inviter_id: int, *, active_only: bool = True) -> list[InvitedRecord]:
    with Session(engine) as session:
        query = select(InvitedMember).where(InvitedMember.inviter_id == inviter_id)
        if active_only:
            query = query.where(InvitedMember.active.is_(True))
        rows = session.scalars(query.order_by(InvitedMember.joined_at)).all()
        return [
            InvitedRecord(
                member_id=r.member_id,
                invite_code=r.invite_code,
                joined_at=r.joined_at,
                active=r.active,
                left_at=r.left_at,
            )
            for r in rows
        ]


def owned_codes(engine: Engine, user_id: int) -> list[str]:
    with Session(engine) as session:
        return list(session.scalars(
            select(InviteOwner.code).where(InviteOwner.owner_id == user_id)
        ).all())


def invite_owner(engine: Engine, code: str) -> int | None:
    with Session(engine) as session:
        row = session.get(InviteOwner, code)
        return row.owner_id if row else None


# ---------------------------------------------------------------------------
# Join / leave
# ---------------------------------------------------------------------------
def record_join(
    engine: Engine,
    guild_id: int,
    member_id: int,
    used_code: str,
    owner_override: int | None,
) -> JoinResult:
    """Credit a member join that came in through *used_code*.

    The credited inviter is the manual owner of the code if one is bound,
    else *owner_override* (the platform-reported invite creator).  With
    neither, nothing is credited.  A blacklisted inviter gets no counter
    changes.
    """
    with get_session(engine) as session:
        owner = session.get(InviteOwner, used_code)
        inviter_id = owner.owner_id if owner else owner_override
        if inviter_id is None:
            return JoinResult(status=JoinStatus.UNKNOWN_INVITER)

        if is_blacklisted(session, guild_id, inviter_id):
            logger.info(
                "Join of %d via %s not credited: inviter %d is blacklisted",
                member_id, used_code, inviter_id,
            )
            return JoinResult(status=JoinStatus.BLACKLISTED, inviter_id=inviter_id)

        stats = get_or_create_stats(session, inviter_id)
        mapping = session.get(MemberInviter, member_id)
        rejoin = mapping is not None
        if rejoin:
            stats.rejoins += 1
            mapping.inviter_id = inviter_id
        else:
            stats.joins += 1
            session.add(MemberInviter(member_id=member_id, inviter_id=inviter_id))

        record = session.get(InvitedMember, (inviter_id, member_id))
        if record is None:
            record = InvitedMember(inviter_id=inviter_id, member_id=member_id)
            session.add(record)
        record.invite_code = used_code
        record.joined_at = _now()
        record.active = True
        record.left_at = None
        session.flush()

        credited = _credit(session, guild_id, inviter_id)
        logger.info(
            "Credited %s of %d to %d via %s (now %d)",
            "rejoin" if rejoin else "join", member_id, inviter_id, used_code, credited,
        )
        return JoinResult(
            status=JoinStatus.CREDITED,
            inviter_id=inviter_id,
            credited=credited,
            rejoin=rejoin,
        )


def record_leave(engine: Engine, member_id: int) -> int | None:
    """Debit the member's last credited inviter; returns that inviter id.

    The member → inviter mapping is kept so a later rejoin is recognised.
    """
    with get_session(engine) as session:
        mapping = session.get(MemberInviter, member_id)
        if mapping is None:
            return None

        inviter_id = mapping.inviter_id
        stats = get_or_create_stats(session, inviter_id)
        stats.left += 1

        record = session.get(InvitedMember, (inviter_id, member_id))
        if record is not None:
            record.active = False
            record.left_at = _now()

        logger.info("Member %d left; debited inviter %d", member_id, inviter_id)
        return inviter_id


# ---------------------------------------------------------------------------
# Admin mutations
# ---------------------------------------------------------------------------
def adjust_manual(engine: Engine, user_id: int, delta: int) -> int:
    """Add *delta* (may be negative) to the manual adjustment; return it."""
    with get_session(engine) as session:
        stats = get_or_create_stats(session, user_id)
        stats.manual += delta
        return stats.manual


def _zero(stats: InviterStats) -> None:
    stats.joins = 0
    stats.rejoins = 0
    stats.left = 0
    stats.manual = 0


def reset(engine: Engine, user_id: int) -> None:
    """Fully detach *user_id* from the ledger.

    Counters go to zero, their invited-members history is dropped and they
    are scrubbed both as a credited inviter of any member and as the owner
    of any invite code.
    """
    with get_session(engine) as session:
        _zero(get_or_create_stats(session, user_id))
        session.execute(delete(InvitedMember).where(InvitedMember.inviter_id == user_id))
        session.execute(delete(MemberInviter).where(MemberInviter.inviter_id == user_id))
        session.execute(delete(InviteOwner).where(InviteOwner.owner_id == user_id))
    logger.info("Ledger reset for %d", user_id)


def reset_all(engine: Engine) -> None:
    """Wipe every ledger table (the backup slot is kept)."""
    with get_session(engine) as session:
        for model in (InviterStats, MemberInviter, InviteOwner, InvitedMember):
            session.execute(delete(model))
    logger.warning("Entire invite ledger reset")


def bind_invite_owner(engine: Engine, code: str, user_id: int) -> None:
    """Credit future joins through *code* to *user_id*."""
    with get_session(engine) as session:
        row = session.get(InviteOwner, code)
        if row is None:
            session.add(InviteOwner(code=code, owner_id=user_id))
        else:
            row.owner_id = user_id
    logger.info("Invite %s bound to %d", code, user_id)


def set_blacklisted(engine: Engine, guild_id: int, user_id: int, blacklisted: bool) -> bool:
    """Add or remove *user_id* from the guild's invite blacklist.

    Counters and reverse links are left alone: credit is suppressed at read
    time, so removing the entry restores the original count.  Returns True
    if membership changed.
    """
    with get_session(engine) as session:
        settings = get_or_create_settings(session, guild_id)
        current = [int(u) for u in (settings.invite_blacklist or [])]
        if blacklisted == (user_id in current):
            return False
        if blacklisted:
            current.append(user_id)
        else:
            current.remove(user_id)
        settings.invite_blacklist = current
    logger.info("Guild %d blacklist %s %d", guild_id, "+" if blacklisted else "-", user_id)
    return True


# ---------------------------------------------------------------------------
# Backup / restore
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def export_ledger(session: Session) -> dict:
    """Serialize all four ledger maps to a JSON-compatible dict."""
    invited: dict[str, dict] = {}
    for r in session.scalars(select(InvitedMember)).all():
        invited.setdefault(str(r.inviter_id), {})[str(r.member_id)] = {
            "inviteCode": r.invite_code,
            "joinedAt": _iso(r.joined_at),
            "active": r.active,
            "leftAt": _iso(r.left_at),
        }
    return {
        "inviterStats": {
            str(s.inviter_id): {
                "joins": s.joins, "rejoins": s.rejoins,
                "left": s.left, "manual": s.manual,
            }
            for s in session.scalars(select(InviterStats)).all()
        },
        "memberInviter": {
            str(m.member_id): m.inviter_id
            for m in session.scalars(select(MemberInviter)).all()
        },
        "inviteOwners": {
            o.code: o.owner_id for o in session.scalars(select(InviteOwner)).all()
        },
        "invitedMembers": invited,
    }


def _counts(snapshot: dict) -> LedgerCounts:
    return LedgerCounts(
        inviters=len(snapshot.get("inviterStats", {})),
        members=len(snapshot.get("memberInviter", {})),
        owners=len(snapshot.get("inviteOwners", {})),
        invited=sum(len(v) for v in snapshot.get("invitedMembers", {}).values()),
    )


def backup_ledger(engine: Engine, *, actor_id: int | None = None) -> LedgerCounts:
    """Store a full copy of the live ledger in the backup slot."""
    with get_session(engine) as session:
        snapshot = export_ledger(session)
        row = session.get(LedgerBackup, BACKUP_SLOT)
        if row is None:
            row = LedgerBackup(id=BACKUP_SLOT, snapshot=snapshot)
            session.add(row)
        row.snapshot = snapshot
        row.created_by = actor_id
        row.created_at = _now()
    counts = _counts(snapshot)
    logger.info("Ledger backup written: %s", counts)
    return counts


def restore_ledger(engine: Engine) -> LedgerCounts:
    """Replace the live ledger wholesale with the stored backup.

    All-or-nothing: the wipe and the reload happen in one transaction.

    Raises
    ------
    ConsistencyViolation
        If no backup has been taken.
    """
    with get_session(engine) as session:
        row = session.get(LedgerBackup, BACKUP_SLOT)
        if row is None:
            raise ConsistencyViolation("No ledger backup exists to restore.")
        snapshot = dict(row.snapshot or {})

        for model in (InviterStats, MemberInviter, InviteOwner, InvitedMember):
            session.execute(delete(model))

        for inviter_id, s in snapshot.get("inviterStats", {}).items():
            session.add(InviterStats(
                inviter_id=int(inviter_id),
                joins=int(s.get("joins", 0)),
                rejoins=int(s.get("rejoins", 0)),
                left=int(s.get("left", 0)),
                manual=int(s.get("manual", 0)),
            ))
        for member_id, inviter_id in snapshot.get("memberInviter", {}).items():
            session.add(MemberInviter(member_id=int(member_id), inviter_id=int(inviter_id)))
        for code, owner_id in snapshot.get("inviteOwners", {}).items():
            session.add(InviteOwner(code=code, owner_id=int(owner_id)))
        for inviter_id, bucket in snapshot.get("invitedMembers", {}).items():
            for member_id, rec in bucket.items():
                session.add(InvitedMember(
                    inviter_id=int(inviter_id),
                    member_id=int(member_id),
                    invite_code=rec.get("inviteCode"),
                    joined_at=_parse_iso(rec.get("joinedAt")) or _now(),
                    active=bool(rec.get("active", True)),
                    left_at=_parse_iso(rec.get("leftAt")),
                ))

    counts = _counts(snapshot)
    logger.warning("Ledger restored from backup: %s", counts)
    return counts
