"""
donutdemand.bot.cogs.settings — Guild Configuration Commands
============================================================

- /config show|staffrole|channel|customerrole|webhook|automod (admins)
- /suspend, /unsuspend — bot owner only; a suspended guild rejects every
  mutating command except the owner's
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands

from donutdemand.bot.cogs.base import DonutCog, guild_id_of, reply
from donutdemand.database.engine import run_db
from donutdemand.errors import ExternalCallFailure, ValidationError
from donutdemand.services import gate
from donutdemand.services.community_service import ensure_automod_role
from donutdemand.services.settings_service import (
    set_staff_role,
    set_suspended,
    update_settings,
)

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot
    from donutdemand.database.models import GuildSettings

logger = logging.getLogger(__name__)

_CHANNEL_FIELDS = {
    "join_log": "join_log_channel_id",
    "feedback": "feedback_channel_id",
    "claims": "claims_channel_id",
}


def _describe(settings: GuildSettings) -> str:
    def ch(cid: int | None) -> str:
        return f"<#{cid}>" if cid else "not set"

    roles = ", ".join(f"<@&{r}>" for r in settings.staff_role_ids or []) or "none"
    return "\n".join([
        f"**Staff roles:** {roles}",
        f"**Join log:** {ch(settings.join_log_channel_id)}",
        f"**Feedback:** {ch(settings.feedback_channel_id)}",
        f"**Claims:** {ch(settings.claims_channel_id)}",
        f"**Customer role:** {f'<@&{settings.customer_role_id}>' if settings.customer_role_id else 'not set'}",
        f"**Payout webhook:** {'configured' if settings.webhook_url else 'not set'}",
        f"**Automod:** {'on' if settings.automod_enabled else 'off'} "
        f"(bypass role `{settings.automod_bypass_role_name}`)",
        f"**Blacklisted inviters:** {len(settings.invite_blacklist or [])}",
        f"**Suspended:** {'yes' if settings.suspended else 'no'}",
    ])


class Settings(DonutCog, name="Settings"):
    """Per-guild configuration."""

    config = app_commands.Group(name="config", description="Configure DonutDemand for this server.")

    async def _admin(self, interaction: discord.Interaction) -> int:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        return guild_id

    @config.command(name="show", description="Show this server's settings.")
    async def show(self, interaction: discord.Interaction) -> None:
        guild_id = await self._admin(interaction)
        await reply(interaction, _describe(await self.settings(guild_id)))

    @config.command(name="staffrole", description="Add or remove a staff role.")
    @app_commands.describe(role="Role to change", enabled="True to add, False to remove")
    async def staffrole(self, interaction: discord.Interaction, role: discord.Role, enabled: bool = True) -> None:
        guild_id = await self._admin(interaction)
        roles = await run_db(set_staff_role, self.bot.engine, guild_id, role.id, enabled=enabled)
        await reply(interaction, f"✅ Staff roles: {', '.join(f'<@&{r}>' for r in roles) or 'none'}")

    @config.command(name="channel", description="Bind the join-log, feedback or claims channel.")
    @app_commands.describe(kind="Which channel binding", channel="Leave empty to clear")
    @app_commands.choices(kind=[
        app_commands.Choice(name="Join log", value="join_log"),
        app_commands.Choice(name="Feedback / vouches", value="feedback"),
        app_commands.Choice(name="Reward claims", value="claims"),
    ])
    async def channel(
        self,
        interaction: discord.Interaction,
        kind: app_commands.Choice[str],
        channel: discord.TextChannel | None = None,
    ) -> None:
        guild_id = await self._admin(interaction)
        await run_db(
            update_settings, self.bot.engine, guild_id,
            **{_CHANNEL_FIELDS[kind.value]: channel.id if channel else None},
        )
        await reply(interaction, f"✅ {kind.name} channel: {channel.mention if channel else 'cleared'}")

    @config.command(name="customerrole", description="Role granted by /operation start.")
    async def customerrole(self, interaction: discord.Interaction, role: discord.Role | None = None) -> None:
        guild_id = await self._admin(interaction)
        await run_db(update_settings, self.bot.engine, guild_id, customer_role_id=role.id if role else None)
        await reply(interaction, f"✅ Customer role: {role.mention if role else 'cleared'}")

    @config.command(name="webhook", description="Payout webhook for reward claims.")
    @app_commands.describe(url="http(s) URL; leave empty to disable claims")
    async def webhook(self, interaction: discord.Interaction, url: str | None = None) -> None:
        guild_id = await self._admin(interaction)
        await run_db(update_settings, self.bot.engine, guild_id, webhook_url=(url or "").strip() or None)
        await reply(interaction, "✅ Payout webhook saved." if url else "✅ Payout webhook cleared.")

    @config.command(name="automod", description="Toggle the link filter.")
    @app_commands.describe(enabled="Delete links from regular members", bypass_role="Role name that may post links")
    async def automod(
        self, interaction: discord.Interaction, enabled: bool, bypass_role: str | None = None,
    ) -> None:
        guild_id = await self._admin(interaction)
        fields: dict = {"automod_enabled": enabled}
        if bypass_role is not None:
            if not bypass_role.strip():
                raise ValidationError("Bypass role name cannot be blank.")
            fields["automod_bypass_role_name"] = bypass_role.strip()[:100]
        await run_db(update_settings, self.bot.engine, guild_id, **fields)
        if enabled:
            try:
                await ensure_automod_role(self.bot.engine, self.bot.platform, guild_id)
            except ExternalCallFailure as exc:
                logger.warning("Automod role setup failed in %d: %s", guild_id, exc)
        await reply(interaction, f"✅ Automod {'enabled' if enabled else 'disabled'}.")

    # -------------------------------------------------------------------
    # Owner: suspension
    # -------------------------------------------------------------------
    async def _suspend(self, interaction: discord.Interaction, guild_id: str | None, suspended: bool) -> None:
        gate.require_owner(self.actor(interaction))
        target = int(guild_id) if guild_id and guild_id.isdigit() else guild_id_of(interaction)
        await run_db(set_suspended, self.bot.engine, target, suspended)
        await reply(interaction, f"✅ Guild `{target}` {'suspended' if suspended else 'unsuspended'}.")

    @app_commands.command(name="suspend", description="Suspend the bot in a server (owner only).")
    @app_commands.describe(guild_id="Server ID (defaults to this one)")
    async def suspend(self, interaction: discord.Interaction, guild_id: str | None = None) -> None:
        await self._suspend(interaction, guild_id, True)

    @app_commands.command(name="unsuspend", description="Lift a suspension (owner only).")
    @app_commands.describe(guild_id="Server ID (defaults to this one)")
    async def unsuspend(self, interaction: discord.Interaction, guild_id: str | None = None) -> None:
        await self._suspend(interaction, guild_id, False)


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(Settings(bot))
