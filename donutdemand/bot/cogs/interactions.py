"""
donutdemand.bot.cogs.interactions — Component & Modal Routing
=============================================================

Buttons and modals are dispatched by ``custom_id`` prefix instead of
per-view callbacks, so messages posted before a restart keep working:

- ``gw_join:<message id>``   → :meth:`GiveawayScheduler.toggle_entry`
- ``ticket:<type id>``       → pre-checks, then the intake modal
- ``ticket_modal:<type id>`` → :meth:`TicketService.open_ticket`
- ``reward_claim``           → eligibility check, then the claim modal
- ``reward_claim_modal``     → :meth:`RewardService.claim`
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from donutdemand.bot.cogs.base import DonutCog, guild_id_of, reply
from donutdemand.bot.cogs.rewards import open_claim_form
from donutdemand.database.engine import run_db
from donutdemand.errors import DonutError
from donutdemand.services.embeds import (
    CLAIM_FIELD_NOTE,
    CLAIM_FIELD_USERNAME,
    GIVEAWAY_JOIN_PREFIX,
    REWARD_CLAIM_ID,
    REWARD_MODAL_ID,
    TICKET_MODAL_PREFIX,
    TICKET_PREFIX,
    build_ticket_modal,
    modal_values,
)
from donutdemand.services.giveaway_service import EntryToggle
from donutdemand.services.reward_service import ClaimPayload
from donutdemand.services.settings_service import get_panel

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot

logger = logging.getLogger(__name__)


class Interactions(DonutCog, name="Interactions"):
    """Routes button presses and modal submits."""

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type not in (
            discord.InteractionType.component,
            discord.InteractionType.modal_submit,
        ):
            return
        custom_id = (interaction.data or {}).get("custom_id", "")
        is_modal = interaction.type is discord.InteractionType.modal_submit

        try:
            if custom_id.startswith(GIVEAWAY_JOIN_PREFIX):
                await self._giveaway_join(interaction, custom_id.removeprefix(GIVEAWAY_JOIN_PREFIX))
            elif is_modal and custom_id.startswith(TICKET_MODAL_PREFIX):
                await self._ticket_submit(interaction, custom_id.removeprefix(TICKET_MODAL_PREFIX))
            elif custom_id.startswith(TICKET_PREFIX):
                await self._ticket_button(interaction, custom_id.removeprefix(TICKET_PREFIX))
            elif is_modal and custom_id == REWARD_MODAL_ID:
                await self._claim_submit(interaction)
            elif custom_id == REWARD_CLAIM_ID:
                await open_claim_form(self.bot, interaction)
        except DonutError as exc:
            await reply(interaction, f"❌ {exc}")
        except Exception:
            logger.exception(
                "Error handling interaction %s", custom_id,
                extra={"event_type": "interaction", "user_id": interaction.user.id},
            )
            if not interaction.response.is_done():
                await interaction.response.send_message(
                    "Error handling that interaction.", ephemeral=True,
                )

    # -------------------------------------------------------------------
    # Giveaways
    # -------------------------------------------------------------------
    async def _giveaway_join(self, interaction: discord.Interaction, raw_id: str) -> None:
        if not raw_id.isdigit():
            await reply(interaction, "This giveaway no longer exists.")
            return
        outcome = await self.bot.giveaways.toggle_entry(
            int(raw_id), interaction.user.id, actor=self.actor(interaction),
        )
        await reply(
            interaction,
            "✅ Entered the giveaway!" if outcome is EntryToggle.JOINED else "✅ Removed your entry.",
        )

    # -------------------------------------------------------------------
    # Tickets
    # -------------------------------------------------------------------
    async def _ticket_button(self, interaction: discord.Interaction, type_id: str) -> None:
        guild_id = guild_id_of(interaction)
        await self.bot.tickets.check_can_open(guild_id, self.actor(interaction), type_id)
        panel = await run_db(get_panel, self.bot.engine, guild_id)
        await interaction.response.send_modal(build_ticket_modal(panel, type_id))

    async def _ticket_submit(self, interaction: discord.Interaction, type_id: str) -> None:
        guild_id = guild_id_of(interaction)
        await interaction.response.defer(ephemeral=True, thinking=True)
        channel = await self.bot.tickets.open_ticket(
            guild_id,
            self.actor(interaction),
            type_id,
            modal_values(interaction.data),
            username=interaction.user.name,
        )
        await reply(interaction, f"✅ Ticket created: {channel.mention}")

    # -------------------------------------------------------------------
    # Rewards
    # -------------------------------------------------------------------
    async def _claim_submit(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        values = modal_values(interaction.data)
        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await self.bot.rewards.claim(
            guild_id,
            interaction.user.id,
            ClaimPayload(
                username=values.get(CLAIM_FIELD_USERNAME, ""),
                note=values.get(CLAIM_FIELD_NOTE) or None,
            ),
            actor=self.actor(interaction),
        )
        await reply(
            interaction,
            f"✅ Claim sent! **{result.invites}** invites → **${result.amount}**. "
            "Your invites have been reset.",
        )


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(Interactions(bot))
