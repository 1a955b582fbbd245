"""
tests/test_giveaway_service.py — Giveaway Scheduler
===================================================

Timers run against an injected clock and sleep so multi-hour giveaways
finish instantly while the scheduler still sees time pass.
"""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta

import pytest
from conftest import make_actor, run_async

from donutdemand.errors import AuthorizationError, ConsistencyViolation, ValidationError
from donutdemand.services import ledger_service
from donutdemand.services.giveaway_service import (
    EntryToggle,
    GiveawayScheduler,
    create_giveaway,
    load_giveaway,
    mark_ended,
)
from donutdemand.services.settings_service import set_suspended

GUILD = 1000
CHANNEL = 2000
HOST = 1
START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Clock whose sleep advances time instead of waiting."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(engine, platform, clock):
    return GiveawayScheduler(
        engine, platform, rng=random.Random(0), clock=clock, sleep=clock.sleep,
    )


def _stored(engine, message_id=500, ends_at=START + timedelta(hours=1), **kw):
    return create_giveaway(
        engine,
        message_id=message_id,
        guild_id=GUILD,
        channel_id=CHANNEL,
        host_id=HOST,
        prize=kw.pop("prize", "Nitro"),
        winner_count=kw.pop("winner_count", 1),
        ends_at=ends_at,
        **kw,
    )


class TestLaunch:
    def test_launch_persists_and_completes(self, scheduler, platform, engine, clock):
        async def scenario():
            state = await scheduler.launch(GUILD, CHANNEL, HOST, "2h", 1, "Nitro")
            assert scheduler.is_scheduled(state.message_id)
            await scheduler.wait_all()
            return state

        state = run_async(scenario())
        assert state.ends_at == START + timedelta(hours=2)
        assert platform.sent[0]["channel_id"] == CHANNEL
        # placeholder refreshed with the join button bound to the message id
        first_edit = platform.edits[0]
        assert first_edit["message_id"] == state.message_id
        assert load_giveaway(engine, state.message_id).ended is True
        assert clock.sleeps == [7200.0]

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"winner_count": 0}, "Winners"),
            ({"prize": "   "}, "Prize"),
            ({"min_invites": -1}, "negative"),
            ({"duration": "whenever"}, "duration"),
            ({"duration": "3000000d"}, "too long"),
            ({"duration": timedelta(days=5000)}, "too long"),
            ({"duration": timedelta(0)}, "greater than zero"),
        ],
    )
    def test_validation(self, scheduler, platform, kwargs, match):
        args = {"duration": "1h", "winner_count": 1, "prize": "Nitro", "min_invites": 0}
        args.update(kwargs)
        with pytest.raises(ValidationError, match=match):
            run_async(scheduler.launch(GUILD, CHANNEL, HOST, **args))
        assert platform.sent == []


class TestEntries:
    def test_toggle_twice_restores(self, scheduler, engine):
        _stored(engine)
        assert run_async(scheduler.toggle_entry(500, 7)) is EntryToggle.JOINED
        assert load_giveaway(engine, 500).entries == [7]
        assert run_async(scheduler.toggle_entry(500, 7)) is EntryToggle.LEFT
        assert load_giveaway(engine, 500).entries == []

    def test_toggle_refreshes_entry_count(self, scheduler, engine, platform):
        _stored(engine)
        run_async(scheduler.toggle_entry(500, 7))
        assert platform.edits[-1]["embed"] is not None

    def test_missing_giveaway(self, scheduler):
        with pytest.raises(ConsistencyViolation, match="no longer exists"):
            run_async(scheduler.toggle_entry(404, 7))

    def test_ended_rejects_toggle(self, scheduler, engine):
        _stored(engine)
        mark_ended(engine, 500)
        with pytest.raises(ConsistencyViolation, match="already ended"):
            run_async(scheduler.toggle_entry(500, 7))

    def test_min_invites_gate(self, scheduler, engine):
        _stored(engine, min_invites=3)
        with pytest.raises(ConsistencyViolation, match=r"Need \*\*3\*\*"):
            run_async(scheduler.toggle_entry(500, 7))
        ledger_service.adjust_manual(engine, 7, 3)
        assert run_async(scheduler.toggle_entry(500, 7)) is EntryToggle.JOINED

    def test_suspended_guild_rejects_toggle(self, scheduler, engine):
        _stored(engine)
        set_suspended(engine, GUILD, True)
        with pytest.raises(AuthorizationError, match="suspended"):
            run_async(scheduler.toggle_entry(500, 7))
        assert load_giveaway(engine, 500).entries == []

    def test_owner_enters_while_suspended(self, scheduler, engine):
        _stored(engine)
        set_suspended(engine, GUILD, True)
        owner = make_actor(7, owner=True)
        assert run_async(scheduler.toggle_entry(500, 7, actor=owner)) is EntryToggle.JOINED


class TestEnd:
    def test_fewer_entries_than_winners(self, scheduler, engine, platform):
        _stored(engine, winner_count=5)
        for user in (7, 8, 9):
            run_async(scheduler.toggle_entry(500, user))
        winners = run_async(scheduler.end(500, actor_id=HOST))
        assert sorted(winners) == [7, 8, 9]
        assert load_giveaway(engine, 500).last_winners == winners
        assert "Winners for **Nitro**" in platform.sent[-1]["content"]

    def test_no_entries(self, scheduler, engine, platform):
        _stored(engine)
        assert run_async(scheduler.end(500)) == []
        assert "No entries" in platform.sent[-1]["content"]

    def test_end_twice_rejected(self, scheduler, engine):
        _stored(engine)
        run_async(scheduler.end(500))
        with pytest.raises(ConsistencyViolation, match="already ended"):
            run_async(scheduler.end(500))

    def test_end_unknown(self, scheduler):
        with pytest.raises(ConsistencyViolation, match="not found"):
            run_async(scheduler.end(404))

    def test_mark_ended_is_compare_and_set(self, engine):
        _stored(engine)
        assert mark_ended(engine, 500) is True
        assert mark_ended(engine, 500) is False

    def test_manual_end_cancels_timer(self, scheduler, engine, platform):
        _stored(engine, ends_at=START + timedelta(days=30))

        async def scenario():
            await scheduler.schedule_completion(500)
            assert scheduler.is_scheduled(500)
            await scheduler.end(500)
            await scheduler.wait_all()

        run_async(scenario())
        assert not scheduler.is_scheduled(500)
        ended_announcements = [m for m in platform.sent if "ended" in (m["content"] or "")]
        assert len(ended_announcements) == 1


class TestTimers:
    def test_long_giveaway_sleeps_in_capped_chunks(self, engine, platform, clock):
        scheduler = GiveawayScheduler(
            engine, platform, clock=clock, sleep=clock.sleep, max_delay=timedelta(hours=1),
        )
        _stored(engine, ends_at=START + timedelta(hours=2, minutes=30))

        async def scenario():
            await scheduler.schedule_completion(500)
            await scheduler.wait_all()

        run_async(scenario())
        assert clock.sleeps == [3600.0, 3600.0, 1800.0]
        assert load_giveaway(engine, 500).ended is True

    def test_schedule_is_idempotent(self, scheduler, engine):
        _stored(engine, ends_at=START + timedelta(days=1))

        async def scenario():
            first = await scheduler.schedule_completion(500)
            second = await scheduler.schedule_completion(500)
            same = first is second
            scheduler.shutdown()
            return same

        assert run_async(scenario()) is True

    def test_resume_pending_completes_overdue(self, scheduler, engine, clock):
        _stored(engine, message_id=501, ends_at=START - timedelta(minutes=5))
        _stored(engine, message_id=502, ends_at=START + timedelta(minutes=5))
        _stored(engine, message_id=503, ends_at=START - timedelta(minutes=5))
        mark_ended(engine, 503)

        async def scenario():
            count = await scheduler.resume_pending()
            await scheduler.wait_all()
            return count

        assert run_async(scenario()) == 2
        assert load_giveaway(engine, 501).ended is True
        assert load_giveaway(engine, 502).ended is True
        assert clock.sleeps == [300.0]

    def test_timer_stops_if_ended_elsewhere(self, engine, platform, clock):
        async def ending_sleep(seconds):
            mark_ended(engine, 500)
            await clock.sleep(seconds)

        scheduler = GiveawayScheduler(engine, platform, clock=clock, sleep=ending_sleep)
        _stored(engine)

        async def scenario():
            await scheduler.schedule_completion(500)
            await scheduler.wait_all()

        run_async(scenario())
        assert platform.sent == []


class TestReroll:
    def test_reroll_running_giveaway(self, scheduler, engine, platform):
        _stored(engine)
        run_async(scheduler.toggle_entry(500, 7))
        assert run_async(scheduler.reroll(500)) == [7]
        state = load_giveaway(engine, 500)
        assert state.ended is False
        assert state.last_winners == [7]
        assert "Reroll" in platform.sent[-1]["content"]

    def test_reroll_requires_entries(self, scheduler, engine):
        _stored(engine)
        run_async(scheduler.end(500))
        with pytest.raises(ConsistencyViolation, match="No entries"):
            run_async(scheduler.reroll(500))

    def test_reroll_picks_from_entries(self, scheduler, engine, platform):
        _stored(engine, winner_count=2)
        for user in (7, 8, 9):
            run_async(scheduler.toggle_entry(500, user))
        run_async(scheduler.end(500))
        winners = run_async(scheduler.reroll(500, actor_id=HOST))
        assert len(winners) == 2
        assert set(winners) <= {7, 8, 9}
        assert load_giveaway(engine, 500).last_winners == winners
        assert "Reroll" in platform.sent[-1]["content"]
