"""
donutdemand.bot.cogs.community — Announcements & Vouches
========================================================

- /embed — post a custom embed (admins)
- /vouches — count the messages in the vouches (feedback) channel
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands

from donutdemand.bot.cogs.base import DonutCog, guild_id_of, reply
from donutdemand.services import gate
from donutdemand.services.community_service import count_vouches
from donutdemand.services.embeds import build_custom_embed

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot


class Community(DonutCog, name="Community"):
    """Admin announcements and the vouch counter."""

    @app_commands.command(name="embed", description="Send a custom embed.")
    @app_commands.describe(
        channel="Where to post (defaults to this channel)",
        title="Embed title",
        description="Embed body",
        color="Hex colour like #2b2d31",
        url="Link the title points to",
        thumbnail="Thumbnail image URL",
        image="Large image URL",
    )
    async def embed(
        self,
        interaction: discord.Interaction,
        channel: discord.TextChannel | None = None,
        title: str | None = None,
        description: str | None = None,
        color: str | None = None,
        url: str | None = None,
        thumbnail: str | None = None,
        image: str | None = None,
    ) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        embed = build_custom_embed(
            title=title, description=description, color=color,
            url=url, thumbnail=thumbnail, image=image,
        )
        target = channel.id if channel else interaction.channel_id
        await self.bot.platform.send_message(target, embed=embed)
        await reply(interaction, "✅ Sent embed.")

    @app_commands.command(name="vouches", description="How many vouches this server has.")
    async def vouches(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        # Reading a long channel history can take a while
        await interaction.response.defer(thinking=True)
        total = await count_vouches(self.bot.engine, self.bot.platform, guild_id)
        await reply(interaction, f"This server has **{total}** vouches.", ephemeral=False)


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(Community(bot))
