"""
donutdemand.bot.cogs.moderation — Admin Prefix Commands & Sticky Messages
=========================================================================

Prefix commands (``!``), administrators only.  Anyone else is ignored
silently, as is everyone but the owner while the guild is suspended.

- !stick <message> / !unstick — keep a message pinned to the bottom
- !mute <member> — five-minute timeout
- !ban <member> / !kick <member>
- !purge <amount> — bulk-delete up to 100 recent messages

The ``on_message`` listener re-posts the channel's sticky under every new
member message.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from donutdemand.bot.cogs.base import DonutCog
from donutdemand.constants import MUTE_DURATION, PURGE_LIMIT
from donutdemand.errors import DonutError
from donutdemand.services import gate

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot

logger = logging.getLogger(__name__)


class Moderation(DonutCog, name="Moderation"):
    """Admin ``!`` commands and the sticky re-poster."""

    async def cog_check(self, ctx: commands.Context) -> bool:
        if ctx.guild is None or not isinstance(ctx.author, discord.Member):
            return False
        actor = self.bot.actor(ctx.author)
        settings = await self.settings(ctx.guild.id)
        if settings.suspended and not actor.is_owner:
            return False
        return gate.is_admin(actor)

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        original = getattr(error, "original", error)
        if isinstance(error, commands.CheckFailure):
            return
        if isinstance(error, commands.MemberNotFound):
            await ctx.reply("❌ I can't find that user in this server.")
        elif isinstance(error, (commands.MissingRequiredArgument, commands.BadArgument)):
            await ctx.reply(f"Usage: `{ctx.clean_prefix}{ctx.command.qualified_name} {ctx.command.signature}`")
        elif isinstance(original, DonutError):
            await ctx.reply(f"❌ {original}")
        elif isinstance(original, discord.Forbidden):
            await ctx.reply("❌ I can't do that. (Missing permission or role too high)")
        else:
            logger.error("Command %s failed", ctx.command, exc_info=original)

    # -------------------------------------------------------------------
    # Sticky messages
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot:
            return
        if message.channel.id not in self.bot.stickies:
            return
        ctx = await self.bot.get_context(message)
        if ctx.valid:
            return
        try:
            await self.bot.stickies.bump(message.channel.id, message.id)
        except Exception:
            logger.exception(
                "Sticky re-post failed in %s", message.channel.id,
                extra={"event_type": "sticky", "user_id": message.author.id},
            )

    @commands.command(name="stick")
    async def stick(self, ctx: commands.Context, *, text: str) -> None:
        await self.bot.stickies.stick(ctx.channel.id, text)
        await ctx.reply("✅ Sticky set for this channel.")

    @commands.command(name="unstick")
    async def unstick(self, ctx: commands.Context) -> None:
        await self.bot.stickies.unstick(ctx.channel.id)
        await ctx.reply("✅ Sticky removed for this channel.")

    # -------------------------------------------------------------------
    # Member moderation
    # -------------------------------------------------------------------
    @commands.command(name="mute")
    async def mute(self, ctx: commands.Context, member: discord.Member) -> None:
        if not ctx.guild.me.guild_permissions.moderate_members:
            await ctx.reply("❌ I need **Moderate Members** permission to timeout users.")
            return
        minutes = int(MUTE_DURATION / timedelta(minutes=1))
        await member.timeout(MUTE_DURATION, reason=f"Timed out by {ctx.author} ({minutes} minutes)")
        logger.info("%s timed out %s", ctx.author, member)
        await ctx.send(f"{member.mention} was timed out for **{minutes} min**.")

    @commands.command(name="ban")
    async def ban(self, ctx: commands.Context, member: discord.Member) -> None:
        await member.ban(reason=f"Banned by {ctx.author}")
        logger.info("%s banned %s", ctx.author, member)
        await ctx.send(f"{member.mention} was banned.")

    @commands.command(name="kick")
    async def kick(self, ctx: commands.Context, member: discord.Member) -> None:
        await member.kick(reason=f"Kicked by {ctx.author}")
        logger.info("%s kicked %s", ctx.author, member)
        await ctx.send(f"{member.mention} was kicked.")

    @commands.command(name="purge")
    async def purge(self, ctx: commands.Context, amount: int) -> None:
        if amount < 1:
            await ctx.reply(f"Usage: `{ctx.clean_prefix}purge <amount>` (1-{PURGE_LIMIT})")
            return
        # +1 removes the command message itself
        deleted = await ctx.channel.purge(limit=min(PURGE_LIMIT, amount + 1))
        logger.info("%s purged %d message(s) in %s", ctx.author, len(deleted), ctx.channel.id)


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(Moderation(bot))
