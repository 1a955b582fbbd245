"""
donutdemand.services.ticket_service — Ticket State Machine
==========================================================

Lifecycle of a support ticket::

    none ──open_ticket──▶ open ──close_ticket──▶ closing ──(grace delay)──▶ deleted
                           │
                           └─start_operation──▶ open + timer ──(duration)──▶ deleted

A ticket *is* its channel: the opener / created / type descriptor lives in
the channel topic (see :mod:`donutdemand.engine.tickets`), so the open
ticket for a member is found by scanning the guild's text channels.

Operation timers are in-memory ``asyncio.Task`` objects keyed by channel id
and do not survive a restart.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from donutdemand.constants import TICKET_CLOSE_DELAY_SECONDS
from donutdemand.database.engine import run_db
from donutdemand.engine.panel import TicketTypeConfig
from donutdemand.engine.parsing import check_duration, format_duration, parse_duration
from donutdemand.engine.tickets import TicketDescriptor, ticket_channel_name
from donutdemand.errors import ConsistencyViolation, ExternalCallFailure, ValidationError
from donutdemand.services import gate, ledger_service
from donutdemand.services.embeds import build_close_dm_embed, build_ticket_intake_embed
from donutdemand.services.locks import KeyedLocks
from donutdemand.services.settings_service import get_panel, get_settings

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from donutdemand.services.gate import Actor
    from donutdemand.services.platform import ChannelRef, Platform

logger = logging.getLogger(__name__)


class TicketService:
    """Open / close tickets and run operation timers."""

    def __init__(
        self,
        engine: Engine,
        platform: Platform,
        *,
        close_delay: float = TICKET_CLOSE_DELAY_SECONDS,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.engine = engine
        self.platform = platform
        self.close_delay = close_delay
        self.locks = locks or KeyedLocks()
        self._operations: dict[int, asyncio.Task] = {}
        self._closing: set[int] = set()
        self._background: set[asyncio.Task] = set()

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    async def find_open_ticket(self, guild_id: int, opener_id: int) -> ChannelRef | None:
        for channel in await self.platform.list_text_channels(guild_id):
            descriptor = channel.descriptor
            if descriptor is not None and descriptor.opener_id == opener_id:
                return channel
        return None

    async def _ticket_channel(self, channel_id: int) -> tuple[ChannelRef, TicketDescriptor]:
        channel = await self.platform.get_channel(channel_id)
        descriptor = channel.descriptor if channel else None
        if channel is None or descriptor is None:
            raise ValidationError("Use this inside a ticket channel.")
        return channel, descriptor

    # -------------------------------------------------------------------
    # Open
    # -------------------------------------------------------------------
    async def check_can_open(self, guild_id: int, actor: Actor, type_id: str) -> TicketTypeConfig:
        """Validate a ticket request before showing the intake form.

        Raises
        ------
        ValidationError
            Unknown ticket type.
        ConsistencyViolation
            The actor already has an open ticket (``reference`` is its
            channel id) or lacks the type's minimum invites.
        """
        settings = await run_db(get_settings, self.engine, guild_id)
        gate.require_active_guild(actor, settings)

        panel = await run_db(get_panel, self.engine, guild_id)
        ticket_type = panel.ticket_type(type_id)
        if ticket_type is None:
            raise ValidationError("This ticket type no longer exists.")

        existing = await self.find_open_ticket(guild_id, actor.user_id)
        if existing is not None:
            raise ConsistencyViolation(
                f"You already have an open ticket: {existing.mention}",
                reference=existing.id,
            )

        if ticket_type.min_invites > 0:
            have = await run_db(ledger_service.credit_for, self.engine, guild_id, actor.user_id)
            if have < ticket_type.min_invites:
                raise ConsistencyViolation(
                    f"You need **{ticket_type.min_invites}** invites to open this ticket. "
                    f"You have **{have}**."
                )
        return ticket_type

    async def open_ticket(
        self,
        guild_id: int,
        actor: Actor,
        type_id: str,
        answers: dict[str, str],
        *,
        username: str,
    ) -> ChannelRef:
        """Create the ticket channel and post the intake summary in it."""
        async with self.locks(("ticket", guild_id)):
            ticket_type = await self.check_can_open(guild_id, actor, type_id)
            settings = await run_db(get_settings, self.engine, guild_id)
            descriptor = TicketDescriptor(
                opener_id=actor.user_id,
                created_at=datetime.now(UTC),
                type_id=ticket_type.id,
            )
            channel = await self.platform.create_ticket_channel(
                guild_id,
                category_name=ticket_type.category,
                name=ticket_channel_name(ticket_type.key, username),
                topic=descriptor.to_topic(),
                opener_id=actor.user_id,
                staff_role_ids=[int(r) for r in settings.staff_role_ids or []],
            )

        logger.info(
            "Ticket %s opened by %d in guild %d (%s)",
            channel.name, actor.user_id, guild_id, ticket_type.id,
        )
        embed = build_ticket_intake_embed(
            ticket_type.label, username, actor.display or username, answers,
        )
        try:
            await self.platform.send_message(channel.id, actor.mention, embed=embed)
        except ExternalCallFailure:
            logger.warning("Intake summary post failed in %s", channel.name, exc_info=True)
        return channel

    # -------------------------------------------------------------------
    # Close
    # -------------------------------------------------------------------
    async def close_ticket(
        self,
        guild_id: int,
        channel_id: int,
        actor: Actor,
        reason: str,
        *,
        guild_name: str = "",
    ) -> TicketDescriptor:
        """Close a ticket: DM the opener, post a notice, delete after a grace delay.

        Only the authorization checks and a repeat close during the grace
        delay can fail; every side effect after that is best-effort.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required to close a ticket.")

        channel, descriptor = await self._ticket_channel(channel_id)
        settings = await run_db(get_settings, self.engine, guild_id)
        gate.require_ticket_closer(actor, settings, descriptor.opener_id)

        async with self.locks(("op", channel_id)):
            if channel_id in self._closing:
                raise ConsistencyViolation("This ticket is already closing.")
            self._closing.add(channel_id)
            self._cancel_timer(channel_id)

        panel = await run_db(get_panel, self.engine, guild_id)
        ticket_type = panel.ticket_type(descriptor.type_id)
        embed = build_close_dm_embed(
            guild_name=guild_name,
            ticket_name=channel.name,
            type_label=ticket_type.label if ticket_type else None,
            closed_by=actor.display or actor.mention,
            reason=reason,
            opened_at=descriptor.created_at,
            closed_at=datetime.now(UTC),
            feedback_channel_id=settings.feedback_channel_id,
        )
        try:
            await self.platform.send_direct(descriptor.opener_id, embed=embed)
        except ExternalCallFailure:
            logger.info("Could not DM ticket opener %d", descriptor.opener_id)

        try:
            await self.platform.send_message(
                channel_id,
                f"\U0001f512 Ticket closed by {actor.mention}. "
                f"Deleting in {self.close_delay:g} seconds…",
            )
        except ExternalCallFailure:
            logger.warning("Closing notice failed in %s", channel.name)

        self._spawn(self._delete_later(channel_id, self.close_delay, f"Ticket closed: {reason}"))
        logger.info("Ticket %s closed by %d: %s", channel.name, actor.user_id, reason)
        return descriptor

    async def _delete_later(self, channel_id: int, delay: float, reason: str) -> None:
        await asyncio.sleep(delay)
        try:
            await self.platform.delete_channel(channel_id, reason=reason)
        except ExternalCallFailure:
            logger.warning("Ticket channel %d could not be deleted", channel_id, exc_info=True)
        self._closing.discard(channel_id)
        self.locks.discard(("op", channel_id))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for pending channel deletions (used on shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # -------------------------------------------------------------------
    # Operation timers
    # -------------------------------------------------------------------
    def has_operation(self, channel_id: int) -> bool:
        task = self._operations.get(channel_id)
        return task is not None and not task.done()

    async def start_operation(
        self,
        guild_id: int,
        channel_id: int,
        actor: Actor,
        duration: str | timedelta,
    ) -> timedelta:
        """Mark the ticket's order as in progress and auto-delete it later.

        Grants the configured customer role to the opener, nudges them
        toward the feedback channel, and replaces any running timer.
        """
        settings = await run_db(get_settings, self.engine, guild_id)
        gate.require_admin(actor, settings)
        delay = parse_duration(duration) if isinstance(duration, str) else check_duration(duration)
        _, descriptor = await self._ticket_channel(channel_id)
        if channel_id in self._closing:
            raise ConsistencyViolation("This ticket is already closing.")

        if settings.customer_role_id:
            await self.platform.add_role(
                guild_id, descriptor.opener_id, settings.customer_role_id,
                reason=f"Customer role given by /operation from {actor.display or actor.user_id}",
            )
        else:
            logger.info("No customer role configured for guild %d; skipping grant", guild_id)

        if settings.feedback_channel_id:
            try:
                await self.platform.send_message(
                    channel_id,
                    f"<@{descriptor.opener_id}> please go to <#{settings.feedback_channel_id}> "
                    "and drop a vouch for us. Thank you!",
                )
            except ExternalCallFailure:
                logger.warning("Feedback nudge failed in channel %d", channel_id)

        async with self.locks(("op", channel_id)):
            self._cancel_timer(channel_id)
            self._operations[channel_id] = asyncio.create_task(
                self._run_operation(channel_id, delay),
                name=f"operation:{channel_id}",
            )
        logger.info("Operation started in %d, closing in %s", channel_id, format_duration(delay))
        return delay

    async def cancel_operation(self, guild_id: int, channel_id: int, actor: Actor) -> None:
        settings = await run_db(get_settings, self.engine, guild_id)
        gate.require_admin(actor, settings)
        async with self.locks(("op", channel_id)):
            if not self._cancel_timer(channel_id):
                raise ConsistencyViolation("No active operation timer in this ticket.")
        logger.info("Operation cancelled in %d by %d", channel_id, actor.user_id)

    def _cancel_timer(self, channel_id: int) -> bool:
        task = self._operations.pop(channel_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _run_operation(self, channel_id: int, delay: timedelta) -> None:
        try:
            await asyncio.sleep(delay.total_seconds())
            await self.platform.delete_channel(channel_id, reason="Operation complete")
            logger.info("Operation finished; deleted ticket %d", channel_id)
        except ExternalCallFailure:
            logger.warning("Operation delete failed for %d", channel_id, exc_info=True)
        finally:
            if self._operations.get(channel_id) is asyncio.current_task():
                del self._operations[channel_id]

    def shutdown(self) -> None:
        for channel_id in list(self._operations):
            self._cancel_timer(channel_id)
