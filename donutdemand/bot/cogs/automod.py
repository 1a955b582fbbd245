"""
donutdemand.bot.cogs.automod — Link Filter
==========================================

When enabled for a guild, deletes messages containing a web link or
Discord invite unless the author is an administrator or holds the
bypass role (``automod`` by default), then posts a warning that removes
itself after a few seconds.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from donutdemand.bot.cogs.base import DonutCog
from donutdemand.constants import AUTOMOD_WARNING_TTL_SECONDS
from donutdemand.engine.parsing import contains_link

if TYPE_CHECKING:
    from collections.abc import Iterable

    from donutdemand.bot.core import DonutBot

logger = logging.getLogger(__name__)


def should_remove(
    content: str | None,
    *,
    enabled: bool,
    is_admin: bool,
    role_names: Iterable[str],
    bypass_role_name: str,
) -> bool:
    """True if the message must be deleted by the link filter."""
    if not enabled or is_admin or not contains_link(content):
        return False
    bypass = bypass_role_name.lower()
    return not any(name.lower() == bypass for name in role_names)


class AutoMod(DonutCog, name="AutoMod"):
    """Deletes links from members without the bypass role."""

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot:
            return
        if not isinstance(message.author, discord.Member) or not contains_link(message.content):
            return
        try:
            await self._filter(message, message.author)
        except Exception:
            logger.exception(
                "Automod failed for message %s", message.id,
                extra={"event_type": "automod", "user_id": message.author.id},
            )

    async def _filter(self, message: discord.Message, member: discord.Member) -> None:
        settings = await self.settings(message.guild.id)
        if not should_remove(
            message.content,
            enabled=settings.automod_enabled,
            is_admin=member.guild_permissions.administrator,
            role_names=[r.name for r in member.roles],
            bypass_role_name=settings.automod_bypass_role_name,
        ):
            return

        try:
            await message.delete()
        except discord.DiscordException:
            logger.warning("Could not delete link message %s", message.id)
            return
        try:
            await message.channel.send(
                f"🚫 {member.mention}, links aren't allowed unless you have the "
                f"**{settings.automod_bypass_role_name}** role.",
                delete_after=AUTOMOD_WARNING_TTL_SECONDS,
            )
        except discord.DiscordException:
            logger.warning("Automod warning failed in channel %s", message.channel.id)


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(AutoMod(bot))
