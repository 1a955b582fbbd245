"""
tests/test_ledger_service.py — Attribution Ledger
=================================================

Join/leave bookkeeping, blacklist semantics, reset and backup/restore
against an in-memory SQLite database.
"""

from __future__ import annotations

import pytest

from donutdemand.engine.attribution import JoinStatus
from donutdemand.errors import ConsistencyViolation
from donutdemand.services import ledger_service as ledger

GUILD = 1000
INVITER = 111111111111
OTHER = 222222222222


@pytest.fixture
def engine(db_engine):
    return db_engine


def _join(engine, member_id, code="abc", creator=INVITER):
    return ledger.record_join(engine, GUILD, member_id, code, creator)


class TestRecordJoin:
    def test_credits_creator(self, engine):
        result = _join(engine, 1)
        assert result.status is JoinStatus.CREDITED
        assert result.inviter_id == INVITER
        assert result.credited == 1
        assert result.rejoin is False
        assert ledger.get_stats(engine, INVITER)["joins"] == 1

    def test_bound_owner_takes_precedence(self, engine):
        ledger.bind_invite_owner(engine, "abc", OTHER)
        result = _join(engine, 1, creator=INVITER)
        assert result.inviter_id == OTHER
        assert ledger.credit_for(engine, GUILD, INVITER) == 0
        assert ledger.credit_for(engine, GUILD, OTHER) == 1

    def test_unknown_inviter(self, engine):
        result = _join(engine, 1, creator=None)
        assert result.status is JoinStatus.UNKNOWN_INVITER
        assert result.inviter_id is None

    def test_rejoin_increments_rejoins(self, engine):
        _join(engine, 1)
        ledger.record_leave(engine, 1)
        result = _join(engine, 1)
        assert result.rejoin is True
        assert ledger.get_stats(engine, INVITER) == {"joins": 1, "rejoins": 1, "left": 1, "manual": 0}
        assert result.credited == 1

    def test_invited_member_history(self, engine):
        _join(engine, 1)
        _join(engine, 2)
        ledger.record_leave(engine, 2)
        active = ledger.invited_members(engine, INVITER)
        assert [r.member_id for r in active] == [1]
        everyone = ledger.invited_members(engine, INVITER, active_only=False)
        assert {r.member_id for r in everyone} == {1, 2}
        left = next(r for r in everyone if r.member_id == 2)
        assert left.active is False
        assert left.left_at is not None


class TestLeave:
    def test_unknown_member_is_noop(self, engine):
        assert ledger.record_leave(engine, 999) is None

    def test_leave_debits_inviter(self, engine):
        for member in (1, 2, 3):
            _join(engine, member)
        assert ledger.record_leave(engine, 3) == INVITER
        assert ledger.credit_for(engine, GUILD, INVITER) == 2

    def test_leave_after_reset_is_noop(self, engine):
        _join(engine, 1)
        ledger.reset(engine, INVITER)
        assert ledger.record_leave(engine, 1) is None
        assert ledger.get_stats(engine, INVITER)["left"] == 0


class TestBlacklist:
    def test_blacklist_is_reversible(self, engine):
        for member in (1, 2, 3):
            _join(engine, member)
        ledger.record_leave(engine, 3)
        assert ledger.credit_for(engine, GUILD, INVITER) == 2

        assert ledger.set_blacklisted(engine, GUILD, INVITER, True) is True
        assert ledger.credit_for(engine, GUILD, INVITER) == 0
        assert ledger.set_blacklisted(engine, GUILD, INVITER, True) is False

        assert ledger.set_blacklisted(engine, GUILD, INVITER, False) is True
        assert ledger.credit_for(engine, GUILD, INVITER) == 2
        assert ledger.get_stats(engine, INVITER) == {"joins": 3, "rejoins": 0, "left": 1, "manual": 0}

    def test_blacklisted_join_not_counted(self, engine):
        ledger.set_blacklisted(engine, GUILD, INVITER, True)
        result = _join(engine, 1)
        assert result.status is JoinStatus.BLACKLISTED
        assert ledger.get_stats(engine, INVITER)["joins"] == 0

    def test_manual_credit_hidden_while_blacklisted(self, engine):
        ledger.set_blacklisted(engine, GUILD, INVITER, True)
        ledger.adjust_manual(engine, INVITER, 4)
        assert ledger.credit_for(engine, GUILD, INVITER) == 0
        ledger.set_blacklisted(engine, GUILD, INVITER, False)
        assert ledger.credit_for(engine, GUILD, INVITER) == 4

    def test_blacklist_is_per_guild(self, engine):
        _join(engine, 1)
        ledger.set_blacklisted(engine, GUILD, INVITER, True)
        assert ledger.credit_for(engine, GUILD, INVITER) == 0
        assert ledger.credit_for(engine, GUILD + 1, INVITER) == 1


class TestAdminMutations:
    def test_manual_adjustment(self, engine):
        assert ledger.adjust_manual(engine, INVITER, 5) == 5
        assert ledger.adjust_manual(engine, INVITER, -2) == 3
        assert ledger.credit_for(engine, GUILD, INVITER) == 3

    def test_negative_manual_clamped_in_credit(self, engine):
        ledger.adjust_manual(engine, INVITER, -10)
        assert ledger.credit_for(engine, GUILD, INVITER) == 0

    def test_reset_detaches_user(self, engine):
        ledger.bind_invite_owner(engine, "mine", INVITER)
        _join(engine, 1)
        ledger.adjust_manual(engine, INVITER, 3)

        ledger.reset(engine, INVITER)

        assert ledger.get_stats(engine, INVITER) == {"joins": 0, "rejoins": 0, "left": 0, "manual": 0}
        assert ledger.owned_codes(engine, INVITER) == []
        assert ledger.invite_owner(engine, "mine") is None
        assert ledger.invited_members(engine, INVITER, active_only=False) == []

    def test_reset_all(self, engine):
        _join(engine, 1)
        ledger.bind_invite_owner(engine, "x", OTHER)
        ledger.reset_all(engine)
        assert ledger.credit_for(engine, GUILD, INVITER) == 0
        assert ledger.invite_owner(engine, "x") is None

    def test_rebinding_code_moves_owner(self, engine):
        ledger.bind_invite_owner(engine, "abc", INVITER)
        ledger.bind_invite_owner(engine, "abc", OTHER)
        assert ledger.invite_owner(engine, "abc") == OTHER
        assert ledger.owned_codes(engine, INVITER) == []


class TestBackupRestore:
    def test_restore_without_backup(self, engine):
        with pytest.raises(ConsistencyViolation, match="No ledger backup"):
            ledger.restore_ledger(engine)

    def test_restore_replaces_live_ledger(self, engine):
        _join(engine, 1)
        _join(engine, 2)
        ledger.record_leave(engine, 2)
        ledger.bind_invite_owner(engine, "abc", INVITER)

        counts = ledger.backup_ledger(engine, actor_id=OTHER)
        assert counts == ledger.LedgerCounts(inviters=1, members=2, owners=1, invited=2)

        ledger.reset_all(engine)
        _join(engine, 9, code="zzz", creator=OTHER)

        restored = ledger.restore_ledger(engine)
        assert restored == counts
        assert ledger.get_stats(engine, INVITER) == {"joins": 2, "rejoins": 0, "left": 1, "manual": 0}
        assert ledger.credit_for(engine, GUILD, OTHER) == 0
        assert ledger.invite_owner(engine, "abc") == INVITER
        assert [r.member_id for r in ledger.invited_members(engine, INVITER)] == [1]
        # member 2 is still mapped, so a rejoin is recognised
        assert _join(engine, 2).rejoin is True

    def test_backup_overwrites_slot(self, engine):
        _join(engine, 1)
        ledger.backup_ledger(engine)
        _join(engine, 2)
        ledger.backup_ledger(engine)
        ledger.reset_all(engine)
        ledger.restore_ledger(engine)
        assert ledger.get_stats(engine, INVITER)["joins"] == 2
