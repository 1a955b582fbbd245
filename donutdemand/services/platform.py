"""
donutdemand.services.platform — Discord Capability Interface
============================================================

Workflows never touch ``discord.Client`` directly.  They talk to a
:class:`Platform`: a narrow set of async capability calls (fetch invites,
send/edit/delete a message, create/delete a channel, assign or create a
role, DM a user, count a channel's messages).  :class:`DiscordPlatform` is
the production implementation; tests drive workflows with an in-memory
fake.

Every failed call surfaces as :class:`~donutdemand.errors.ExternalCallFailure`
so callers decide in one place whether to swallow or propagate.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import discord

from donutdemand.engine.attribution import InviteInfo
from donutdemand.engine.tickets import TicketDescriptor
from donutdemand.errors import ExternalCallFailure

if TYPE_CHECKING:
    from discord.ext import commands

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChannelRef:
    """Just enough of a guild text channel for the ticket workflow."""

    id: int
    name: str
    topic: str | None = None

    @property
    def descriptor(self) -> TicketDescriptor | None:
        return TicketDescriptor.parse(self.topic)

    @property
    def mention(self) -> str:
        return f"<#{self.id}>"


class Platform(Protocol):
    """Capability calls consumed by the workflows."""

    async def fetch_invites(self, guild_id: int) -> list[InviteInfo]: ...

    async def create_invite(self, channel_id: int, *, reason: str) -> str: ...

    async def send_message(
        self,
        channel_id: int,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        view: discord.ui.View | None = None,
    ) -> int: ...

    async def edit_message(
        self,
        channel_id: int,
        message_id: int,
        *,
        embed: discord.Embed | None = None,
        view: discord.ui.View | None = None,
    ) -> None: ...

    async def delete_message(self, channel_id: int, message_id: int) -> None: ...

    async def send_direct(
        self, user_id: int, content: str | None = None, *, embed: discord.Embed | None = None,
    ) -> None: ...

    async def get_channel(self, channel_id: int) -> ChannelRef | None: ...

    async def list_text_channels(self, guild_id: int) -> list[ChannelRef]: ...

    async def create_ticket_channel(
        self,
        guild_id: int,
        *,
        category_name: str,
        name: str,
        topic: str,
        opener_id: int,
        staff_role_ids: list[int],
    ) -> ChannelRef: ...

    async def delete_channel(self, channel_id: int, *, reason: str | None = None) -> None: ...

    async def add_role(
        self, guild_id: int, user_id: int, role_id: int, *, reason: str | None = None,
    ) -> None: ...

    async def fetch_member_tag(self, guild_id: int, user_id: int) -> str | None: ...

    async def count_messages(self, channel_id: int) -> int: ...

    async def ensure_role(
        self, guild_id: int, name: str, *, reason: str | None = None,
    ) -> int | None: ...


@contextmanager
def _external(action: str) -> Iterator[None]:
    """Translate discord.py failures into :class:`ExternalCallFailure`."""
    try:
        yield
    except discord.DiscordException as exc:
        raise ExternalCallFailure(f"{action} failed: {exc}") from exc


class DiscordPlatform:
    """:class:`Platform` backed by a live discord.py client."""

    def __init__(self, client: commands.Bot) -> None:
        self.client = client

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            raise ExternalCallFailure(f"Guild {guild_id} is not available.")
        return guild

    async def _messageable(self, channel_id: int) -> discord.abc.Messageable:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            with _external(f"Fetching channel {channel_id}"):
                channel = await self.client.fetch_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            raise ExternalCallFailure(f"Channel {channel_id} cannot receive messages.")
        return channel

    # -------------------------------------------------------------------
    # Invites
    # -------------------------------------------------------------------
    async def fetch_invites(self, guild_id: int) -> list[InviteInfo]:
        guild = self._guild(guild_id)
        with _external("Fetching invites"):
            invites = await guild.invites()
        return [
            InviteInfo(
                code=inv.code,
                uses=inv.uses or 0,
                inviter_id=inv.inviter.id if inv.inviter else None,
            )
            for inv in invites
        ]

    async def create_invite(self, channel_id: int, *, reason: str) -> str:
        channel = await self._messageable(channel_id)
        if not isinstance(channel, discord.abc.GuildChannel):
            raise ExternalCallFailure("Invites can only be created in guild channels.")
        with _external("Creating invite"):
            invite = await channel.create_invite(
                max_age=0, max_uses=0, unique=True, reason=reason,
            )
        return invite.code

    # -------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------
    async def send_message(self, channel_id, content=None, *, embed=None, view=None) -> int:
        channel = await self._messageable(channel_id)
        kwargs: dict = {"content": content}
        if embed is not None:
            kwargs["embed"] = embed
        if view is not None:
            kwargs["view"] = view
        with _external(f"Sending message to {channel_id}"):
            message = await channel.send(**kwargs)
        return message.id

    async def edit_message(self, channel_id, message_id, *, embed=None, view=None) -> None:
        channel = await self._messageable(channel_id)
        kwargs: dict = {}
        if embed is not None:
            kwargs["embed"] = embed
        if view is not None:
            kwargs["view"] = view
        with _external(f"Editing message {message_id}"):
            message = await channel.fetch_message(message_id)
            await message.edit(**kwargs)

    async def delete_message(self, channel_id: int, message_id: int) -> None:
        channel = await self._messageable(channel_id)
        with _external(f"Deleting message {message_id}"):
            message = await channel.fetch_message(message_id)
            await message.delete()

    async def send_direct(self, user_id, content=None, *, embed=None) -> None:
        with _external(f"Direct message to {user_id}"):
            user = self.client.get_user(user_id) or await self.client.fetch_user(user_id)
            await user.send(content=content, embed=embed)

    # -------------------------------------------------------------------
    # Channels
    # -------------------------------------------------------------------
    async def get_channel(self, channel_id: int) -> ChannelRef | None:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.client.fetch_channel(channel_id)
            except discord.NotFound:
                return None
            except discord.DiscordException as exc:
                raise ExternalCallFailure(f"Fetching channel {channel_id} failed: {exc}") from exc
        if not isinstance(channel, discord.TextChannel):
            return None
        return ChannelRef(id=channel.id, name=channel.name, topic=channel.topic)

    async def list_text_channels(self, guild_id: int) -> list[ChannelRef]:
        guild = self._guild(guild_id)
        return [
            ChannelRef(id=ch.id, name=ch.name, topic=ch.topic)
            for ch in guild.text_channels
        ]

    async def create_ticket_channel(
        self,
        guild_id: int,
        *,
        category_name: str,
        name: str,
        topic: str,
        opener_id: int,
        staff_role_ids: list[int],
    ) -> ChannelRef:
        guild = self._guild(guild_id)
        visible = discord.PermissionOverwrite(
            view_channel=True, send_messages=True, read_message_history=True,
        )
        overwrites: dict = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            discord.Object(id=opener_id): visible,
        }
        for role_id in staff_role_ids:
            role = guild.get_role(role_id)
            if role is not None:
                overwrites[role] = visible

        with _external("Creating ticket channel"):
            category = discord.utils.get(guild.categories, name=category_name)
            if category is None:
                category = await guild.create_category(category_name)
            channel = await guild.create_text_channel(
                name=name,
                category=category,
                topic=topic,
                overwrites=overwrites,
            )
        return ChannelRef(id=channel.id, name=channel.name, topic=channel.topic)

    async def delete_channel(self, channel_id: int, *, reason: str | None = None) -> None:
        channel = self.client.get_channel(channel_id)
        with _external(f"Deleting channel {channel_id}"):
            if channel is None:
                channel = await self.client.fetch_channel(channel_id)
            await channel.delete(reason=reason)

    # -------------------------------------------------------------------
    # Members & roles
    # -------------------------------------------------------------------
    async def add_role(self, guild_id, user_id, role_id, *, reason=None) -> None:
        guild = self._guild(guild_id)
        role = guild.get_role(role_id)
        if role is None:
            raise ExternalCallFailure("Customer role not found (wrong role ID?).")
        me = guild.me
        if me is not None and role >= me.top_role:
            raise ExternalCallFailure(
                "Move the bot role above the customer role in Server Settings → Roles."
            )
        with _external("Assigning role"):
            member = guild.get_member(user_id) or await guild.fetch_member(user_id)
            await member.add_roles(role, reason=reason)

    async def fetch_member_tag(self, guild_id: int, user_id: int) -> str | None:
        guild = self._guild(guild_id)
        member = guild.get_member(user_id)
        if member is None:
            try:
                member = await guild.fetch_member(user_id)
            except discord.NotFound:
                return None
            except discord.DiscordException as exc:
                raise ExternalCallFailure(f"Fetching member {user_id} failed: {exc}") from exc
        return str(member)

    async def ensure_role(self, guild_id: int, name: str, *, reason: str | None = None) -> int | None:
        guild = self._guild(guild_id)
        wanted = name.lower()
        role = discord.utils.find(lambda r: r.name.lower() == wanted, guild.roles)
        if role is not None:
            return role.id
        me = guild.me
        if me is None or not me.guild_permissions.manage_roles:
            return None
        with _external(f"Creating role {name}"):
            role = await guild.create_role(
                name=name,
                permissions=discord.Permissions.none(),
                mentionable=False,
                hoist=False,
                reason=reason,
            )
        return role.id

    # -------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------
    async def count_messages(self, channel_id: int) -> int:
        channel = await self._messageable(channel_id)
        total = 0
        with _external(f"Reading history of {channel_id}"):
            async for _ in channel.history(limit=None):
                total += 1
        return total
