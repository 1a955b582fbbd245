"""
donutdemand.bot.cogs.rewards — Invite Reward Claims
===================================================

- /claim — open the reward claim form (members with enough invites)
- /rewardpanel — post a persistent "Claim Rewards" button (admins)

The button and the form submit are routed in
:mod:`donutdemand.bot.cogs.interactions`, which shares
:func:`open_claim_form` with ``/claim``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands

from donutdemand.bot.cogs.base import DonutCog, guild_id_of, reply
from donutdemand.constants import CLAIM_COLOR
from donutdemand.database.engine import run_db
from donutdemand.errors import ConsistencyViolation
from donutdemand.services import gate
from donutdemand.services.embeds import build_claim_modal, build_reward_panel_view
from donutdemand.services.settings_service import get_settings

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot


async def open_claim_form(bot: DonutBot, interaction: discord.Interaction) -> None:
    """Show the claim modal if the member currently qualifies."""
    guild_id = guild_id_of(interaction)
    settings = await run_db(get_settings, bot.engine, guild_id)
    gate.require_active_guild(bot.actor(interaction.user), settings)

    eligibility = await bot.rewards.check_eligible(guild_id, interaction.user.id)
    if not eligibility.ok:
        raise ConsistencyViolation(
            f"You need **{bot.rewards.threshold}** invites to claim. "
            f"You have **{eligibility.invites}**."
        )
    await interaction.response.send_modal(build_claim_modal())


class Rewards(DonutCog, name="Rewards"):
    """Reward claim entry points."""

    @app_commands.command(name="claim", description="Claim your invite reward.")
    async def claim(self, interaction: discord.Interaction) -> None:
        await open_claim_form(self.bot, interaction)

    @app_commands.command(name="rewardpanel", description="Post the Claim Rewards button.")
    async def rewardpanel(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        embed = discord.Embed(
            title="\U0001f381 Invite Rewards",
            description=(
                f"Invite **{self.bot.rewards.threshold}+** friends, then press the button "
                f"to cash out **${self.bot.rewards.payout_per_invite}** per invite."
            ),
            color=CLAIM_COLOR,
        )
        await self.bot.platform.send_message(
            interaction.channel_id, embed=embed, view=build_reward_panel_view(),
        )
        await reply(interaction, "✅ Posted reward panel.")


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(Rewards(bot))
