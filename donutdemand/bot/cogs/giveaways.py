"""
donutdemand.bot.cogs.giveaways — Giveaway Commands
==================================================

- /giveaway — start a giveaway in the current channel (staff)
- /end — end a giveaway now (staff)
- /reroll — pick new winners for an ended giveaway (staff)

Join / leave button presses are routed in
:mod:`donutdemand.bot.cogs.interactions`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands

from donutdemand.bot.cogs.base import DonutCog, guild_id_of, reply
from donutdemand.engine.parsing import extract_message_id
from donutdemand.errors import ValidationError
from donutdemand.services import gate

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot


class Giveaways(DonutCog, name="Giveaways"):
    """Start, end and reroll giveaways."""

    async def _require_staff(self, interaction: discord.Interaction) -> int:
        guild_id = guild_id_of(interaction)
        gate.require_staff(self.actor(interaction), await self.settings(guild_id))
        return guild_id

    @staticmethod
    def _message_id(raw: str) -> int:
        message_id = extract_message_id(raw)
        if message_id is None:
            raise ValidationError("Invalid message ID/link.")
        return message_id

    @app_commands.command(name="giveaway", description="Start a giveaway in this channel.")
    @app_commands.describe(
        duration="How long it runs (e.g. 30m, 1h, 2d)",
        winners="Number of winners",
        prize="What is being given away",
        min_invites="Invites needed to enter (default 0)",
    )
    async def giveaway(
        self,
        interaction: discord.Interaction,
        duration: str,
        winners: app_commands.Range[int, 1, 50],
        prize: str,
        min_invites: app_commands.Range[int, 0] = 0,
    ) -> None:
        guild_id = await self._require_staff(interaction)
        await interaction.response.defer(ephemeral=True)
        state = await self.bot.giveaways.launch(
            guild_id,
            interaction.channel_id,
            interaction.user.id,
            duration,
            winners,
            prize,
            min_invites,
        )
        await reply(interaction, f"✅ Giveaway started (message ID `{state.message_id}`).")

    @app_commands.command(name="end", description="End a giveaway now.")
    @app_commands.describe(message="Giveaway message ID or link")
    async def end(self, interaction: discord.Interaction, message: str) -> None:
        await self._require_staff(interaction)
        message_id = self._message_id(message)
        await interaction.response.defer(ephemeral=True)
        await self.bot.giveaways.end(message_id, interaction.user.id)
        await reply(interaction, "✅ Giveaway ended.")

    @app_commands.command(name="reroll", description="Pick new winners for an ended giveaway.")
    @app_commands.describe(message="Giveaway message ID or link")
    async def reroll(self, interaction: discord.Interaction, message: str) -> None:
        await self._require_staff(interaction)
        message_id = self._message_id(message)
        await interaction.response.defer(ephemeral=True)
        await self.bot.giveaways.reroll(message_id, interaction.user.id)
        await reply(interaction, "✅ Rerolled winners.")


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(Giveaways(bot))
