"""
donutdemand.bot.cogs.tickets — Ticket Panel & Lifecycle Commands
================================================================

- /panel set|show|reset|post — manage the ticket panel (admins)
- /close — close the current ticket (opener or staff)
- /operation start|cancel — timed auto-close after an order is handled

Panel button presses and intake modal submits are routed in
:mod:`donutdemand.bot.cogs.interactions`.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands

from donutdemand.bot.cogs.base import DonutCog, guild_id_of, reply
from donutdemand.database.engine import run_db
from donutdemand.engine.panel import parse_panel_json
from donutdemand.engine.parsing import format_duration
from donutdemand.services import gate
from donutdemand.services.embeds import build_panel_embed, build_panel_view
from donutdemand.services.settings_service import get_panel, reset_panel, save_panel

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot

logger = logging.getLogger(__name__)

# Discord message cap, leaving room for the code fence
_MAX_SHOW_LENGTH = 1800


class Tickets(DonutCog, name="Tickets"):
    """Ticket panel configuration and the close / operation commands."""

    panel = app_commands.Group(name="panel", description="Configure the ticket panel.")
    operation = app_commands.Group(name="operation", description="Timed ticket auto-close.")

    # -------------------------------------------------------------------
    # /panel
    # -------------------------------------------------------------------
    @panel.command(name="set", description="Save the panel config from a JSON string.")
    @app_commands.rename(raw="json")
    @app_commands.describe(raw="Full panel config as JSON")
    async def panel_set(self, interaction: discord.Interaction, raw: str) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        panel = parse_panel_json(raw)
        await run_db(save_panel, self.bot.engine, guild_id, panel, actor_id=interaction.user.id)
        await reply(interaction, "✅ Saved panel config for this server.")

    @panel.command(name="show", description="Show the current panel config.")
    async def panel_show(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        panel = await run_db(get_panel, self.bot.engine, guild_id)
        text = json.dumps(panel.to_json_dict(), indent=2, ensure_ascii=False)
        if len(text) > _MAX_SHOW_LENGTH:
            await reply(interaction, "Config is too large to display here. Use /panel reset or re-set it.")
            return
        await reply(interaction, f"```json\n{text}\n```")

    @panel.command(name="reset", description="Go back to the default panel.")
    async def panel_reset(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        await run_db(reset_panel, self.bot.engine, guild_id)
        await reply(interaction, "✅ Panel config reset to default.")

    @panel.command(name="post", description="Post the ticket panel.")
    @app_commands.describe(channel="Where to post it (defaults to here)")
    async def panel_post(
        self, interaction: discord.Interaction, channel: discord.TextChannel | None = None,
    ) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        panel = await run_db(get_panel, self.bot.engine, guild_id)
        target_id = channel.id if channel else interaction.channel_id
        await self.bot.platform.send_message(
            target_id, embed=build_panel_embed(panel), view=build_panel_view(panel),
        )
        await reply(interaction, "✅ Posted ticket panel.")

    # -------------------------------------------------------------------
    # /close
    # -------------------------------------------------------------------
    @app_commands.command(name="close", description="Close this ticket.")
    @app_commands.describe(reason="Why the ticket is being closed")
    async def close(self, interaction: discord.Interaction, reason: str) -> None:
        guild_id = guild_id_of(interaction)
        await self.bot.tickets.close_ticket(
            guild_id,
            interaction.channel_id,
            self.actor(interaction),
            reason,
            guild_name=interaction.guild.name if interaction.guild else "",
        )
        await reply(
            interaction,
            f"Closing ticket in {self.bot.tickets.close_delay:g} seconds...",
        )

    # -------------------------------------------------------------------
    # /operation
    # -------------------------------------------------------------------
    @operation.command(name="start", description="Give the customer role and close the ticket later.")
    @app_commands.describe(duration="How long until the ticket closes (e.g. 10m, 1h, 2d)")
    async def operation_start(self, interaction: discord.Interaction, duration: str) -> None:
        guild_id = guild_id_of(interaction)
        delay = await self.bot.tickets.start_operation(
            guild_id, interaction.channel_id, self.actor(interaction), duration,
        )
        await reply(interaction, f"✅ Operation started. Ticket closes in **{format_duration(delay)}**.")

    @operation.command(name="cancel", description="Cancel the pending auto-close.")
    async def operation_cancel(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        await self.bot.tickets.cancel_operation(guild_id, interaction.channel_id, self.actor(interaction))
        await reply(interaction, "🛑 Operation cancelled.")


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(Tickets(bot))
