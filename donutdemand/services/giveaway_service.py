"""
donutdemand.services.giveaway_service — Giveaway Scheduler
==========================================================

Time-delayed giveaways that survive restarts.

Store layer (sync, call via ``run_db``)
    Giveaway rows keyed by announcement message id, the entry set, and a
    compare-and-set on ``ended`` so completion happens at most once.

:class:`GiveawayScheduler` (async)
    Launch, entry toggles, manual end, reroll and the completion timers.
    A single timer never waits longer than ``max_delay`` (the platform's
    32-bit millisecond limit by default); longer giveaways simply wake up,
    see time remaining, and wait again.  On startup :meth:`resume_pending`
    re-arms every giveaway that has not ended; ones whose time already
    passed complete immediately.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from donutdemand.constants import MAX_TIMER_DELAY
from donutdemand.database.engine import get_session, run_db
from donutdemand.database.models import Giveaway, GiveawayEntry
from donutdemand.engine.parsing import check_duration, parse_duration
from donutdemand.engine.selection import pick_winners
from donutdemand.errors import ConsistencyViolation, ExternalCallFailure, ValidationError
from donutdemand.services import gate, ledger_service
from donutdemand.services.embeds import (
    build_giveaway_embed,
    build_giveaway_view,
    mention_list,
)
from donutdemand.services.gate import Actor
from donutdemand.services.locks import KeyedLocks
from donutdemand.services.settings_service import get_settings

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from donutdemand.services.platform import Platform

logger = logging.getLogger(__name__)


class EntryToggle(enum.StrEnum):
    JOINED = "joined"
    LEFT = "left"


@dataclass(slots=True)
class GiveawayState:
    """Detached, plain-data view of a giveaway and its entries."""

    message_id: int
    guild_id: int
    channel_id: int
    prize: str
    winner_count: int
    host_id: int
    ends_at: datetime
    ended: bool
    min_invites: int
    entries: list[int] = field(default_factory=list)
    last_winners: list[int] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _state(row: Giveaway) -> GiveawayState:
    return GiveawayState(
        message_id=row.message_id,
        guild_id=row.guild_id,
        channel_id=row.channel_id,
        prize=row.prize,
        winner_count=row.winner_count,
        host_id=row.host_id,
        ends_at=_as_utc(row.ends_at),
        ended=row.ended,
        min_invites=row.min_invites,
        entries=[e.user_id for e in row.entries],
        last_winners=[int(u) for u in row.last_winners or []],
    )


# ---------------------------------------------------------------------------
# Store layer
# ---------------------------------------------------------------------------
def create_giveaway(
    engine: Engine,
    *,
    message_id: int,
    guild_id: int,
    channel_id: int,
    host_id: int,
    prize: str,
    winner_count: int,
    ends_at: datetime,
    min_invites: int = 0,
) -> GiveawayState:
    with get_session(engine) as session:
        row = Giveaway(
            message_id=message_id,
            guild_id=guild_id,
            channel_id=channel_id,
            host_id=host_id,
            prize=prize,
            winner_count=winner_count,
            ends_at=ends_at,
            ended=False,
            min_invites=min_invites,
            last_winners=[],
        )
        session.add(row)
        session.flush()
        return _state(row)


def load_giveaway(engine: Engine, message_id: int) -> GiveawayState | None:
    with Session(engine) as session:
        row = session.get(Giveaway, message_id)
        return _state(row) if row else None


def toggle_entry_row(engine: Engine, message_id: int, user_id: int) -> EntryToggle:
    """Add or remove *user_id* from the entry set.

    Raises
    ------
    ConsistencyViolation
        If the giveaway is missing or has ended.
    """
    with get_session(engine) as session:
        row = session.get(Giveaway, message_id)
        if row is None:
            raise ConsistencyViolation("This giveaway no longer exists.")
        if row.ended:
            raise ConsistencyViolation("This giveaway already ended.")
        entry = session.get(GiveawayEntry, (message_id, user_id))
        if entry is None:
            session.add(GiveawayEntry(message_id=message_id, user_id=user_id))
            return EntryToggle.JOINED
        session.delete(entry)
        return EntryToggle.LEFT


def mark_ended(engine: Engine, message_id: int) -> bool:
    """Flip ``ended`` false → true; returns False if it was already set."""
    with get_session(engine) as session:
        result = session.execute(
            update(Giveaway)
            .where(Giveaway.message_id == message_id, Giveaway.ended.is_(False))
            .values(ended=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


def record_winners(engine: Engine, message_id: int, winners: list[int]) -> None:
    with get_session(engine) as session:
        row = session.get(Giveaway, message_id)
        if row is not None:
            row.last_winners = list(winners)


def pending_giveaways(engine: Engine) -> list[tuple[int, datetime]]:
    """``(message_id, ends_at)`` for every giveaway not yet ended."""
    with Session(engine) as session:
        rows = session.execute(
            select(Giveaway.message_id, Giveaway.ends_at)
            .where(Giveaway.ended.is_(False))
            .order_by(Giveaway.ends_at)
        ).all()
        return [(mid, _as_utc(ends)) for mid, ends in rows]


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------
def _utcnow() -> datetime:
    return datetime.now(UTC)


class GiveawayScheduler:
    """Runs giveaways end to end on top of the store layer."""

    def __init__(
        self,
        engine: Engine,
        platform: Platform,
        *,
        rng: random.Random | None = None,
        max_delay: timedelta = MAX_TIMER_DELAY,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.engine = engine
        self.platform = platform
        self.rng = rng
        self.max_delay = max_delay
        self.clock = clock
        self.sleep = sleep
        self.locks = locks or KeyedLocks()
        self._timers: dict[int, asyncio.Task] = {}

    # -------------------------------------------------------------------
    # Launch
    # -------------------------------------------------------------------
    async def launch(
        self,
        guild_id: int,
        channel_id: int,
        host_id: int,
        duration: str | timedelta,
        winner_count: int,
        prize: str,
        min_invites: int = 0,
    ) -> GiveawayState:
        """Post the announcement, persist the giveaway and arm its timer."""
        delay = parse_duration(duration) if isinstance(duration, str) else check_duration(duration)
        prize = (prize or "").strip()
        if winner_count < 1:
            raise ValidationError("Winners must be at least 1.")
        if not prize:
            raise ValidationError("Prize cannot be empty.")
        if min_invites < 0:
            raise ValidationError("Minimum invites cannot be negative.")

        ends_at = self.clock() + delay
        # The join button needs the message id, which only exists once sent.
        message_id = await self.platform.send_message(
            channel_id,
            embed=build_giveaway_embed(
                prize=prize, host_id=host_id, ends_at=ends_at, entry_count=0,
                winner_count=winner_count, min_invites=min_invites,
                ended=False, message_id=None,
            ),
            view=build_giveaway_view(None, ended=False),
        )
        state = await run_db(
            create_giveaway,
            self.engine,
            message_id=message_id,
            guild_id=guild_id,
            channel_id=channel_id,
            host_id=host_id,
            prize=prize,
            winner_count=winner_count,
            ends_at=ends_at,
            min_invites=min_invites,
        )
        await self._refresh_message(state)
        await self.schedule_completion(message_id)
        logger.info(
            "Giveaway %d launched in %d: %r, %d winner(s), ends %s",
            message_id, channel_id, prize, winner_count, ends_at.isoformat(),
        )
        return state

    # -------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------
    async def toggle_entry(
        self, message_id: int, user_id: int, *, actor: Actor | None = None,
    ) -> EntryToggle:
        """Join if not entered, leave if entered.

        *actor* defaults to a plain member with *user_id*; entries in a
        suspended guild are refused unless the actor is the bot owner.
        """
        async with self.locks(message_id):
            state = await run_db(load_giveaway, self.engine, message_id)
            if state is None:
                raise ConsistencyViolation("This giveaway no longer exists.")
            settings = await run_db(get_settings, self.engine, state.guild_id)
            gate.require_active_guild(actor or Actor(user_id=user_id), settings)
            if state.ended:
                raise ConsistencyViolation("This giveaway already ended.")
            if state.min_invites > 0:
                have = await run_db(ledger_service.credit_for, self.engine, state.guild_id, user_id)
                if have < state.min_invites:
                    raise ConsistencyViolation(
                        f"Need **{state.min_invites}** invites. You have **{have}**."
                    )
            outcome = await run_db(toggle_entry_row, self.engine, message_id, user_id)
            state = await run_db(load_giveaway, self.engine, message_id)

        if state is not None:
            await self._refresh_message(state)
        return outcome

    # -------------------------------------------------------------------
    # End / reroll
    # -------------------------------------------------------------------
    async def end(self, message_id: int, actor_id: int | None = None) -> list[int]:
        """End a running giveaway now; returns the winners."""
        state = await run_db(load_giveaway, self.engine, message_id)
        if state is None:
            raise ConsistencyViolation("Giveaway not found.")
        if state.ended:
            raise ConsistencyViolation("Giveaway already ended.")
        winners = await self._complete(message_id, ended_by=actor_id)
        if winners is None:
            raise ConsistencyViolation("Giveaway already ended.")
        return winners

    async def reroll(self, message_id: int, actor_id: int | None = None) -> list[int]:
        """Pick a fresh set of winners from the current entries.

        Works on running and ended giveaways alike; only an empty entry
        set is refused.
        """
        async with self.locks(message_id):
            state = await run_db(load_giveaway, self.engine, message_id)
            if state is None:
                raise ConsistencyViolation("Giveaway not found.")
            if not state.entries:
                raise ConsistencyViolation("No entries to reroll.")
            winners = pick_winners(sorted(state.entries), state.winner_count, self.rng)
            await run_db(record_winners, self.engine, message_id, winners)

        by = f" by <@{actor_id}>" if actor_id else ""
        await self._announce(
            state.channel_id,
            f"\U0001f501 Reroll{by}! New winners for **{state.prize}**: {mention_list(winners)}",
        )
        logger.info("Giveaway %d rerolled: %s", message_id, winners)
        return winners

    async def _complete(self, message_id: int, *, ended_by: int | None = None) -> list[int] | None:
        """End the giveaway exactly once; ``None`` if it had already ended."""
        async with self.locks(message_id):
            if not await run_db(mark_ended, self.engine, message_id):
                return None
            timer = self._timers.get(message_id)
            if timer is not None and timer is not asyncio.current_task():
                timer.cancel()
                self._timers.pop(message_id, None)

            state = await run_db(load_giveaway, self.engine, message_id)
            winners = pick_winners(sorted(state.entries), state.winner_count, self.rng)
            await run_db(record_winners, self.engine, message_id, winners)
        self.locks.discard(message_id)

        await self._refresh_message(state)
        by = f" (ended by <@{ended_by}>)" if ended_by else ""
        if winners:
            text = (
                f"\U0001f389 Giveaway ended{by}! Winners for **{state.prize}**: "
                f"{mention_list(winners)}"
            )
        else:
            text = f"No entries: giveaway for **{state.prize}** ended with no winners."
        await self._announce(state.channel_id, text)
        logger.info("Giveaway %d ended with %d winner(s)", message_id, len(winners))
        return winners

    # -------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------
    def is_scheduled(self, message_id: int) -> bool:
        task = self._timers.get(message_id)
        return task is not None and not task.done()

    async def schedule_completion(self, message_id: int) -> asyncio.Task | None:
        """Arm the completion timer; a no-op if one is already running."""
        existing = self._timers.get(message_id)
        if existing is not None and not existing.done():
            return existing
        state = await run_db(load_giveaway, self.engine, message_id)
        if state is None or state.ended:
            return None
        task = asyncio.create_task(
            self._wait_then_complete(message_id, state.ends_at),
            name=f"giveaway:{message_id}",
        )
        self._timers[message_id] = task
        return task

    async def _wait_then_complete(self, message_id: int, ends_at: datetime) -> None:
        try:
            while True:
                remaining = ends_at - self.clock()
                if remaining <= timedelta(0):
                    break
                await self.sleep(min(remaining, self.max_delay).total_seconds())
                state = await run_db(load_giveaway, self.engine, message_id)
                if state is None or state.ended:
                    return
            await self._complete(message_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Giveaway completion failed", extra={"message_id": message_id},
            )
        finally:
            if self._timers.get(message_id) is asyncio.current_task():
                del self._timers[message_id]

    async def resume_pending(self) -> int:
        """Re-arm timers for every unfinished giveaway; returns how many."""
        pending = await run_db(pending_giveaways, self.engine)
        for message_id, _ in pending:
            await self.schedule_completion(message_id)
        if pending:
            logger.info("Resumed %d pending giveaway(s)", len(pending))
        return len(pending)

    def shutdown(self) -> None:
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()

    async def wait_all(self) -> None:
        """Await every armed timer (tests and graceful shutdown)."""
        tasks = [t for t in self._timers.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------
    # Presentation (best-effort)
    # -------------------------------------------------------------------
    async def _refresh_message(self, state: GiveawayState) -> None:
        try:
            await self.platform.edit_message(
                state.channel_id,
                state.message_id,
                embed=build_giveaway_embed(
                    prize=state.prize,
                    host_id=state.host_id,
                    ends_at=state.ends_at,
                    entry_count=len(state.entries),
                    winner_count=state.winner_count,
                    min_invites=state.min_invites,
                    ended=state.ended,
                    message_id=state.message_id,
                ),
                view=build_giveaway_view(state.message_id, ended=state.ended),
            )
        except ExternalCallFailure:
            logger.warning("Giveaway message %d could not be updated", state.message_id)

    async def _announce(self, channel_id: int, text: str) -> None:
        try:
            await self.platform.send_message(channel_id, text)
        except ExternalCallFailure:
            logger.warning("Giveaway announcement failed in channel %d", channel_id)
