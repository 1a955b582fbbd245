"""
donutdemand.bot.cogs.base — Shared Cog Plumbing
===============================================

Not an extension.  Every DonutDemand cog derives from :class:`DonutCog`,
which gives it the bot handle, the invoking :class:`Actor`, guild settings
access, and one error handler that turns any
:class:`~donutdemand.errors.DonutError` into an ephemeral reply.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from donutdemand.database.engine import run_db
from donutdemand.errors import DonutError, ValidationError
from donutdemand.services.settings_service import get_settings

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot
    from donutdemand.database.models import GuildSettings
    from donutdemand.services.gate import Actor

logger = logging.getLogger(__name__)


async def reply(
    interaction: discord.Interaction,
    content: str | None = None,
    *,
    ephemeral: bool = True,
    **kwargs,
) -> None:
    """Respond to *interaction* whether or not it was already deferred."""
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=ephemeral, **kwargs)
    else:
        await interaction.response.send_message(content, ephemeral=ephemeral, **kwargs)


def guild_id_of(interaction: discord.Interaction) -> int:
    if interaction.guild_id is None:
        raise ValidationError("Use this command inside a server.")
    return interaction.guild_id


class DonutCog(commands.Cog):
    """Base class for DonutDemand cogs."""

    def __init__(self, bot: DonutBot) -> None:
        self.bot = bot

    def actor(self, interaction: discord.Interaction) -> Actor:
        return self.bot.actor(interaction.user)

    async def settings(self, guild_id: int) -> GuildSettings:
        return await run_db(get_settings, self.bot.engine, guild_id)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        original = getattr(error, "original", error)
        if isinstance(original, DonutError):
            await reply(interaction, f"❌ {original}")
        elif isinstance(error, app_commands.CheckFailure):
            await reply(interaction, "🔒 You can't use this command here.")
        else:
            raise error
