"""
donutdemand.bot.cogs.invites — Invite Ledger Commands & Events
==============================================================

Gateway events:
- on_member_join / on_member_remove — credit and debit inviters
- on_invite_create / on_invite_delete — refresh the snapshot cache

Slash commands:
- /invites, /linkinvite, /generate — member self-service
- /link — staff view of who a member brought in
- /addinvites, /resetinvites, /resetall — ledger adjustments
- /blacklist add|remove — suppress a member's credit
- /ledger backup|restore — single-slot ledger backup
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from donutdemand.bot.cogs.base import DonutCog, guild_id_of, reply
from donutdemand.database.engine import run_db
from donutdemand.services import gate, ledger_service

if TYPE_CHECKING:
    from donutdemand.bot.core import DonutBot

logger = logging.getLogger(__name__)


class Invites(DonutCog, name="Invites"):
    """Invite attribution and the commands that read or adjust it."""

    blacklist = app_commands.Group(name="blacklist", description="Manage the invite blacklist.")
    ledger = app_commands.Group(name="ledger", description="Back up or restore the invite ledger.")

    # -------------------------------------------------------------------
    # Gateway events
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        try:
            if member.bot:
                return
            result = await self.bot.invites.handle_member_join(
                member.guild.id, member.id, mention=member.mention,
            )
            logger.info("Member joined: %s (ID: %d) → %s", member, member.id, result.status)
        except Exception:
            logger.exception(
                "Error attributing join for %s", member.id,
                extra={"event_type": "member_join", "user_id": member.id},
            )

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        try:
            if member.bot:
                return
            inviter_id = await self.bot.invites.handle_member_leave(member.id)
            logger.info("Member left: %s (ID: %d), inviter %s", member, member.id, inviter_id)
        except Exception:
            logger.exception(
                "Error processing leave for %s", member.id,
                extra={"event_type": "member_leave", "user_id": member.id},
            )

    @commands.Cog.listener()
    async def on_invite_create(self, invite: discord.Invite) -> None:
        if invite.guild is not None:
            await self.bot.invites.refresh_guild(invite.guild.id)

    @commands.Cog.listener()
    async def on_invite_delete(self, invite: discord.Invite) -> None:
        if invite.guild is not None:
            await self.bot.invites.refresh_guild(invite.guild.id)

    # -------------------------------------------------------------------
    # Member self-service
    # -------------------------------------------------------------------
    @app_commands.command(name="invites", description="Show how many invites a member has.")
    @app_commands.describe(user="Member to look up")
    async def invites(self, interaction: discord.Interaction, user: discord.User) -> None:
        guild_id = guild_id_of(interaction)
        count = await run_db(ledger_service.credit_for, self.bot.engine, guild_id, user.id)
        await interaction.response.send_message(
            f"📨 **{user}** has **{count}** invites still in the server."
        )

    @app_commands.command(name="linkinvite", description="Credit an existing invite code to yourself.")
    @app_commands.describe(code="Invite code or discord.gg link")
    async def linkinvite(self, interaction: discord.Interaction, code: str) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_active_guild(self.actor(interaction), await self.settings(guild_id))
        bound = await self.bot.invites.link_invite(guild_id, interaction.user.id, code)
        await reply(interaction, f"✅ Linked invite **{bound}** to you.")

    @app_commands.command(name="generate", description="Create a personal invite link credited to you.")
    async def generate(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_active_guild(self.actor(interaction), await self.settings(guild_id))
        url = await self.bot.invites.generate_invite(
            guild_id, interaction.channel_id, interaction.user.id, user_tag=str(interaction.user),
        )
        view = discord.ui.View()
        view.add_item(discord.ui.Button(style=discord.ButtonStyle.link, label="Open Invite", url=url))
        await reply(
            interaction,
            f"✅ Your personal invite link (credited to you):\n{url}\n\nTip: tap-and-hold → Copy Link",
            view=view,
        )

    # -------------------------------------------------------------------
    # Staff view
    # -------------------------------------------------------------------
    @app_commands.command(name="link", description="Show who a member invited and their invite links.")
    @app_commands.describe(user="Inviter to inspect")
    async def link(self, interaction: discord.Interaction, user: discord.User) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_staff(self.actor(interaction), await self.settings(guild_id))
        await interaction.response.defer(ephemeral=True)

        report = await self.bot.invites.describe_inviter(guild_id, user.id)
        members = (
            "\n".join(
                f"{i}. {m.tag} (code: {m.code})"
                for i, m in enumerate(report.active_members, start=1)
            )
            or "No active invited members found."
        )
        links = "\n".join(report.links) or "None found."
        await reply(
            interaction,
            f"**Invites for:** {user} ({report.credited} credited)\n\n"
            f"**Active invited members (still credited):**\n{members}\n\n"
            f"**Invite link(s) they use:**\n{links}",
        )

    # -------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------
    @app_commands.command(name="addinvites", description="Add (or subtract) manual invites.")
    @app_commands.describe(user="Member to adjust", amount="Invites to add; negative to remove")
    async def addinvites(self, interaction: discord.Interaction, user: discord.User, amount: int) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        await run_db(ledger_service.adjust_manual, self.bot.engine, user.id, amount)
        total = await run_db(ledger_service.credit_for, self.bot.engine, guild_id, user.id)
        await interaction.response.send_message(
            f"✅ Added **{amount}** invites to **{user}** (now **{total}**)."
        )

    @app_commands.command(name="resetinvites", description="Reset a member's invite stats.")
    @app_commands.describe(user="Member to reset")
    async def resetinvites(self, interaction: discord.Interaction, user: discord.User) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_staff_role(self.actor(interaction), await self.settings(guild_id))
        await run_db(ledger_service.reset, self.bot.engine, user.id)
        await interaction.response.send_message(f"✅ Reset invite stats for **{user}**.")

    @app_commands.command(name="resetall", description="Reset invite stats for everyone.")
    async def resetall(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        await run_db(ledger_service.reset_all, self.bot.engine)
        await interaction.response.send_message("✅ Reset invite stats for **everyone** in this server.")

    # -------------------------------------------------------------------
    # /blacklist
    # -------------------------------------------------------------------
    @blacklist.command(name="add", description="Stop a member from earning invite credit.")
    async def blacklist_add(self, interaction: discord.Interaction, user: discord.User) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        changed = await run_db(ledger_service.set_blacklisted, self.bot.engine, guild_id, user.id, True)
        await reply(
            interaction,
            f"✅ **{user}** is now blacklisted; their invites no longer count."
            if changed else f"**{user}** is already blacklisted.",
        )

    @blacklist.command(name="remove", description="Let a member earn invite credit again.")
    async def blacklist_remove(self, interaction: discord.Interaction, user: discord.User) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        changed = await run_db(ledger_service.set_blacklisted, self.bot.engine, guild_id, user.id, False)
        await reply(
            interaction,
            f"✅ **{user}** removed from the blacklist." if changed else f"**{user}** wasn't blacklisted.",
        )

    # -------------------------------------------------------------------
    # /ledger
    # -------------------------------------------------------------------
    @ledger.command(name="backup", description="Save a copy of the whole invite ledger.")
    async def ledger_backup(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        counts = await run_db(ledger_service.backup_ledger, self.bot.engine, actor_id=interaction.user.id)
        await reply(
            interaction,
            f"✅ Backup saved: {counts.inviters} inviters, {counts.members} members, "
            f"{counts.owners} linked codes.",
        )

    @ledger.command(name="restore", description="Replace the invite ledger with the saved backup.")
    async def ledger_restore(self, interaction: discord.Interaction) -> None:
        guild_id = guild_id_of(interaction)
        gate.require_admin(self.actor(interaction), await self.settings(guild_id))
        counts = await run_db(ledger_service.restore_ledger, self.bot.engine)
        await reply(
            interaction,
            f"✅ Ledger restored: {counts.inviters} inviters, {counts.members} members, "
            f"{counts.owners} linked codes.",
        )


async def setup(bot: DonutBot) -> None:
    await bot.add_cog(Invites(bot))
