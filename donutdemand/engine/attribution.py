"""
donutdemand.engine.attribution — Invite Diff & Credit Arithmetic
================================================================

Discord never tells a bot *which* invite a new member used.  The ledger
reconstructs it: keep the last known ``{code: uses}`` snapshot per guild,
fetch a fresh one when a member joins, and take the code whose use count
went up.  That reconciliation step lives here as pure functions so it can
be exercised with synthetic snapshots — no Discord, no database.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

__all__ = [
    "InviteInfo",
    "InviteSnapshot",
    "InviteUsed",
    "JoinStatus",
    "credited_invites",
    "detect_invite_used",
    "find_used_invite",
    "snapshot_from",
]

InviteSnapshot = dict[str, int]


@dataclass(frozen=True, slots=True)
class InviteInfo:
    """One live invite as reported by the platform."""

    code: str
    uses: int
    inviter_id: int | None = None


@dataclass(frozen=True, slots=True)
class InviteUsed:
    """Derived event: *member_id* joined *guild_id* through *code*."""

    guild_id: int
    member_id: int
    code: str
    creator_id: int | None


class JoinStatus(enum.StrEnum):
    """How a member join was attributed."""
    CREDITED = "credited"
    BLACKLISTED = "blacklisted"
    UNKNOWN_INVITER = "unknown_inviter"    # code found, nobody to credit
    UNDETECTED = "undetected"              # no cached snapshot or no code rose


def snapshot_from(invites: Iterable[InviteInfo]) -> InviteSnapshot:
    """Collapse a live invite list into ``{code: uses}``."""
    return {inv.code: inv.uses or 0 for inv in invites}


def find_used_invite(before: Mapping[str, int], after: Iterable[InviteInfo]) -> InviteInfo | None:
    """Return the first invite whose use count strictly increased.

    Codes missing from *before* count as zero previous uses, so a brand-new
    invite used once is still detected.
    """
    for inv in after:
        if (inv.uses or 0) > before.get(inv.code, 0):
            return inv
    return None


def detect_invite_used(
    guild_id: int,
    member_id: int,
    before: Mapping[str, int] | None,
    after: list[InviteInfo],
) -> InviteUsed | None:
    """Diff two snapshots into an :class:`InviteUsed` event.

    Returns ``None`` when there is no previous snapshot to compare against
    or when no count rose.
    """
    if before is None:
        return None
    used = find_used_invite(before, after)
    if used is None:
        return None
    return InviteUsed(
        guild_id=guild_id,
        member_id=member_id,
        code=used.code,
        creator_id=used.inviter_id,
    )


def credited_invites(
    joins: int,
    rejoins: int,
    left: int,
    manual: int,
    *,
    blacklisted: bool = False,
) -> int:
    """``max(0, joins + rejoins - left + manual)``, or 0 when blacklisted.

    ``manual`` may be negative; only the aggregate is clamped.
    """
    if blacklisted:
        return 0
    return max(0, (joins or 0) + (rejoins or 0) - (left or 0) + (manual or 0))
