"""
donutdemand.services.community_service — Sticky Messages, Vouches & Roles
=========================================================================

Small community features that sit beside the main workflows.

:class:`StickyBoard`
    One sticky message per channel.  Every new member message pushes the
    sticky back to the bottom: the previous copy is deleted and the text
    is posted again.  Stickies live in memory and are gone after a
    restart.

:func:`count_vouches`
    Number of messages in the guild's feedback (vouches) channel.

:func:`ensure_automod_role`
    Creates the automod bypass role at startup when it is missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from donutdemand.database.engine import run_db
from donutdemand.errors import ExternalCallFailure, ValidationError
from donutdemand.services.locks import KeyedLocks
from donutdemand.services.settings_service import get_settings

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from donutdemand.services.platform import Platform

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StickyNote:
    content: str
    message_id: int | None = None


class StickyBoard:
    """Per-channel sticky messages."""

    def __init__(self, platform: Platform, *, locks: KeyedLocks | None = None) -> None:
        self.platform = platform
        self.locks = locks or KeyedLocks()
        self._notes: dict[int, StickyNote] = {}

    def get(self, channel_id: int) -> StickyNote | None:
        return self._notes.get(channel_id)

    def __contains__(self, channel_id: int) -> bool:
        return channel_id in self._notes

    async def stick(self, channel_id: int, content: str) -> StickyNote:
        """Set (or replace) the channel's sticky and post it now."""
        content = (content or "").strip()
        if not content:
            raise ValidationError("Usage: `!stick <message>`")

        async with self.locks(("sticky", channel_id)):
            await self._remove_copy(channel_id, self._notes.get(channel_id))
            message_id = await self.platform.send_message(channel_id, content)
            note = self._notes[channel_id] = StickyNote(content, message_id)
        logger.info("Sticky set in channel %d", channel_id)
        return note

    async def unstick(self, channel_id: int) -> bool:
        """Drop the channel's sticky; False if there was none."""
        async with self.locks(("sticky", channel_id)):
            note = self._notes.pop(channel_id, None)
            await self._remove_copy(channel_id, note)
        self.locks.discard(("sticky", channel_id))
        return note is not None

    async def bump(self, channel_id: int, message_id: int) -> bool:
        """Re-post the sticky below *message_id*; True if it moved."""
        note = self._notes.get(channel_id)
        if note is None or note.message_id == message_id:
            return False

        async with self.locks(("sticky", channel_id)):
            # unstuck while we waited
            if self._notes.get(channel_id) is not note:
                return False
            await self._remove_copy(channel_id, note)
            try:
                note.message_id = await self.platform.send_message(channel_id, note.content)
            except ExternalCallFailure:
                note.message_id = None
                logger.warning("Sticky re-post failed in channel %d", channel_id)
                return False
        return True

    async def _remove_copy(self, channel_id: int, note: StickyNote | None) -> None:
        if note is None or note.message_id is None:
            return
        try:
            await self.platform.delete_message(channel_id, note.message_id)
        except ExternalCallFailure:
            logger.info("Old sticky %d already gone", note.message_id)


# ---------------------------------------------------------------------------
# Vouches
# ---------------------------------------------------------------------------
async def count_vouches(engine: Engine, platform: Platform, guild_id: int) -> int:
    settings = await run_db(get_settings, engine, guild_id)
    if not settings.feedback_channel_id:
        raise ValidationError("No vouches channel is set. Use `/config channel feedback` first.")
    try:
        return await platform.count_messages(settings.feedback_channel_id)
    except ExternalCallFailure as exc:
        raise ExternalCallFailure("Couldn't read the vouches channel.") from exc


# ---------------------------------------------------------------------------
# Automod bypass role
# ---------------------------------------------------------------------------
async def ensure_automod_role(engine: Engine, platform: Platform, guild_id: int) -> int | None:
    """Return the bypass role id, creating the role if needed.

    ``None`` means the bot lacks Manage Roles and the role does not exist.
    """
    settings = await run_db(get_settings, engine, guild_id)
    role_id = await platform.ensure_role(
        guild_id, settings.automod_bypass_role_name, reason="Auto-created for link bypass",
    )
    if role_id is None:
        logger.warning(
            "Automod role %r missing in guild %d and cannot be created",
            settings.automod_bypass_role_name, guild_id,
        )
    return role_id
