"""
donutdemand.services.invite_tracker — Invite Snapshot Cache & Join Attribution
==============================================================================

Async coordinator in front of :mod:`donutdemand.services.ledger_service`.
Keeps the per-guild ``{code: uses}`` snapshot in memory, diffs it on every
member join to find the invite that was used, credits the ledger, and
drops a line in the guild's join-log channel.

The snapshot cache is rebuilt on demand (startup, invite create/delete,
every join).  A guild with no cached snapshot cannot be attributed: the
join is logged as undetected and the cache is filled for next time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from donutdemand.constants import INVITE_LINK_BASE
from donutdemand.database.engine import run_db
from donutdemand.engine.attribution import (
    InviteSnapshot,
    JoinStatus,
    detect_invite_used,
    snapshot_from,
)
from donutdemand.engine.parsing import extract_invite_code
from donutdemand.errors import ExternalCallFailure, ValidationError
from donutdemand.services import ledger_service
from donutdemand.services.ledger_service import JoinResult
from donutdemand.services.locks import KeyedLocks
from donutdemand.services.settings_service import get_settings

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from donutdemand.services.platform import Platform

logger = logging.getLogger(__name__)

# Caps for the /link report
MAX_LISTED_MEMBERS = 30
MAX_LISTED_CODES = 15


@dataclass(frozen=True, slots=True)
class InvitedEntry:
    tag: str
    code: str


@dataclass(slots=True)
class InviterReport:
    """Everything ``/link`` shows about one inviter."""

    user_id: int
    credited: int
    active_members: list[InvitedEntry] = field(default_factory=list)
    codes: list[str] = field(default_factory=list)

    @property
    def links(self) -> list[str]:
        return [f"{INVITE_LINK_BASE}{c}" for c in self.codes]


class InviteTracker:
    """Owns the snapshot cache and the join / leave coordination."""

    def __init__(self, engine: Engine, platform: Platform, *, locks: KeyedLocks | None = None) -> None:
        self.engine = engine
        self.platform = platform
        self.locks = locks or KeyedLocks()
        self._snapshots: dict[int, InviteSnapshot] = {}

    # -------------------------------------------------------------------
    # Snapshot cache
    # -------------------------------------------------------------------
    def cached(self, guild_id: int) -> InviteSnapshot | None:
        return self._snapshots.get(guild_id)

    async def refresh_guild(self, guild_id: int) -> InviteSnapshot | None:
        """Re-fetch the guild's invites into the cache.

        A failed fetch (usually missing Manage Guild permission) is logged
        and leaves the cache as it was.
        """
        try:
            invites = await self.platform.fetch_invites(guild_id)
        except ExternalCallFailure as exc:
            logger.warning("Could not refresh invites for guild %d: %s", guild_id, exc)
            return self._snapshots.get(guild_id)
        snapshot = snapshot_from(invites)
        self._snapshots[guild_id] = snapshot
        logger.debug("Cached %d invites for guild %d", len(snapshot), guild_id)
        return snapshot

    def forget(self, guild_id: int) -> None:
        self._snapshots.pop(guild_id, None)

    # -------------------------------------------------------------------
    # Join / leave
    # -------------------------------------------------------------------
    async def handle_member_join(self, guild_id: int, member_id: int, *, mention: str | None = None) -> JoinResult:
        """Attribute a join, credit the ledger and post to the join log."""
        mention = mention or f"<@{member_id}>"
        async with self.locks(("join", guild_id)):
            before = self._snapshots.get(guild_id)
            try:
                after = await self.platform.fetch_invites(guild_id)
            except ExternalCallFailure as exc:
                logger.warning("Invite fetch failed on join of %d: %s", member_id, exc)
                result = JoinResult(status=JoinStatus.UNDETECTED)
                await self._log_join(guild_id, self._describe(mention, result, no_snapshot=True))
                return result

            self._snapshots[guild_id] = snapshot_from(after)
            used = detect_invite_used(guild_id, member_id, before, after)
            if used is None:
                result = JoinResult(status=JoinStatus.UNDETECTED)
            else:
                result = await run_db(
                    ledger_service.record_join,
                    self.engine, guild_id, member_id, used.code, used.creator_id,
                )

        await self._log_join(guild_id, self._describe(mention, result, no_snapshot=before is None))
        return result

    async def handle_member_leave(self, member_id: int) -> int | None:
        return await run_db(ledger_service.record_leave, self.engine, member_id)

    @staticmethod
    def _describe(mention: str, result: JoinResult, *, no_snapshot: bool) -> str:
        if result.status is JoinStatus.CREDITED:
            return (
                f"{mention} has been invited by <@{result.inviter_id}> "
                f"and now has **{result.credited}** invites."
            )
        if result.status is JoinStatus.BLACKLISTED:
            return (
                f"{mention} joined via <@{result.inviter_id}>, who is blacklisted; "
                "no invite credited."
            )
        if result.status is JoinStatus.UNKNOWN_INVITER:
            return f"{mention} has been invited by **Unknown** and now has **0** invites."
        if no_snapshot:
            return f"{mention} joined. (Couldn't detect inviter: missing invite permissions)"
        return f"{mention} joined. (Couldn't detect invite used)"

    async def _log_join(self, guild_id: int, text: str) -> None:
        settings = await run_db(get_settings, self.engine, guild_id)
        if not settings.join_log_channel_id:
            return
        try:
            await self.platform.send_message(settings.join_log_channel_id, text)
        except ExternalCallFailure:
            logger.warning("Join log post failed in guild %d", guild_id, exc_info=True)

    # -------------------------------------------------------------------
    # Invite ownership
    # -------------------------------------------------------------------
    async def link_invite(self, guild_id: int, user_id: int, raw_code: str) -> str:
        """Bind an existing guild invite to *user_id*; returns the bare code.

        Raises
        ------
        ValidationError
            If the code is malformed or not one of the guild's live invites.
        ExternalCallFailure
            If the guild's invites cannot be fetched to verify it.
        """
        code = extract_invite_code(raw_code)
        if not code:
            raise ValidationError("Invalid invite code.")
        invites = await self.platform.fetch_invites(guild_id)
        if not any(inv.code == code for inv in invites):
            raise ValidationError("That invite code wasn't found in this server.")
        await run_db(ledger_service.bind_invite_owner, self.engine, code, user_id)
        self._snapshots[guild_id] = snapshot_from(invites)
        return code

    async def generate_invite(self, guild_id: int, channel_id: int, user_id: int, *, user_tag: str = "") -> str:
        """Create a permanent personal invite credited to *user_id*; return its URL."""
        code = await self.platform.create_invite(
            channel_id, reason=f"Invite generated for {user_tag or user_id}",
        )
        await run_db(ledger_service.bind_invite_owner, self.engine, code, user_id)
        snapshot = self._snapshots.setdefault(guild_id, {})
        snapshot.setdefault(code, 0)
        logger.info("Generated invite %s for %d", code, user_id)
        return f"{INVITE_LINK_BASE}{code}"

    async def describe_inviter(self, guild_id: int, user_id: int) -> InviterReport:
        """Active invited members and every code credited to *user_id*."""
        credited = await run_db(ledger_service.credit_for, self.engine, guild_id, user_id)
        records = await run_db(ledger_service.invited_members, self.engine, user_id)
        report = InviterReport(user_id=user_id, credited=credited)

        for rec in records:
            if len(report.active_members) >= MAX_LISTED_MEMBERS:
                break
            tag = await self.platform.fetch_member_tag(guild_id, rec.member_id)
            if tag is None:
                continue
            report.active_members.append(InvitedEntry(tag=tag, code=rec.invite_code or "unknown"))

        codes: list[str] = []
        try:
            for inv in await self.platform.fetch_invites(guild_id):
                if inv.inviter_id == user_id:
                    codes.append(inv.code)
        except ExternalCallFailure:
            logger.warning("Invite list unavailable for /link in guild %d", guild_id)
        for code in await run_db(ledger_service.owned_codes, self.engine, user_id):
            if code not in codes:
                codes.append(code)
        report.codes = codes[:MAX_LISTED_CODES]
        return report
