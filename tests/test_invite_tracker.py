"""
tests/test_invite_tracker.py — Invite Snapshot Cache & Join Attribution
=======================================================================
"""

from __future__ import annotations

import pytest
from conftest import run_async

from donutdemand.engine.attribution import InviteInfo, JoinStatus
from donutdemand.errors import ExternalCallFailure, ValidationError
from donutdemand.services import ledger_service
from donutdemand.services.invite_tracker import InviteTracker
from donutdemand.services.settings_service import update_settings

GUILD = 1000
LOG_CHANNEL = 4444
INVITER = 111111111111


@pytest.fixture
def engine(db_engine):
    update_settings(db_engine, GUILD, join_log_channel_id=LOG_CHANNEL)
    return db_engine


@pytest.fixture
def tracker(engine, platform):
    return InviteTracker(engine, platform)


def _logged(platform) -> list[str]:
    return [m["content"] for m in platform.sent if m["channel_id"] == LOG_CHANNEL]


class TestSnapshotCache:
    def test_refresh_fills_cache(self, tracker, platform):
        platform.invites[GUILD] = [InviteInfo("abc", 3, INVITER)]
        assert run_async(tracker.refresh_guild(GUILD)) == {"abc": 3}
        assert tracker.cached(GUILD) == {"abc": 3}

    def test_failed_refresh_keeps_cache(self, tracker, platform):
        platform.invites[GUILD] = [InviteInfo("abc", 3, INVITER)]
        run_async(tracker.refresh_guild(GUILD))
        platform.fail.add("fetch_invites")
        assert run_async(tracker.refresh_guild(GUILD)) == {"abc": 3}

    def test_forget(self, tracker, platform):
        run_async(tracker.refresh_guild(GUILD))
        tracker.forget(GUILD)
        assert tracker.cached(GUILD) is None


class TestMemberJoin:
    def test_credited_join(self, tracker, platform, engine):
        platform.invites[GUILD] = [InviteInfo("abc", 3, INVITER)]
        run_async(tracker.refresh_guild(GUILD))
        platform.invites[GUILD] = [InviteInfo("abc", 4, INVITER)]

        result = run_async(tracker.handle_member_join(GUILD, 1))

        assert result.status is JoinStatus.CREDITED
        assert result.inviter_id == INVITER
        assert tracker.cached(GUILD) == {"abc": 4}
        assert ledger_service.credit_for(engine, GUILD, INVITER) == 1
        assert _logged(platform) == [
            f"<@1> has been invited by <@{INVITER}> and now has **1** invites."
        ]

    def test_no_snapshot_is_undetected_then_cached(self, tracker, platform):
        platform.invites[GUILD] = [InviteInfo("abc", 4, INVITER)]
        result = run_async(tracker.handle_member_join(GUILD, 1))
        assert result.status is JoinStatus.UNDETECTED
        assert "missing invite permissions" in _logged(platform)[0]
        assert tracker.cached(GUILD) == {"abc": 4}

    def test_fetch_failure_is_undetected(self, tracker, platform):
        platform.fail.add("fetch_invites")
        result = run_async(tracker.handle_member_join(GUILD, 1))
        assert result.status is JoinStatus.UNDETECTED
        assert len(_logged(platform)) == 1

    def test_no_count_rose(self, tracker, platform):
        platform.invites[GUILD] = [InviteInfo("abc", 4, INVITER)]
        run_async(tracker.refresh_guild(GUILD))
        result = run_async(tracker.handle_member_join(GUILD, 1))
        assert result.status is JoinStatus.UNDETECTED
        assert _logged(platform) == ["<@1> joined. (Couldn't detect invite used)"]

    def test_unknown_inviter(self, tracker, platform):
        platform.invites[GUILD] = [InviteInfo("vanity", 0, None)]
        run_async(tracker.refresh_guild(GUILD))
        platform.invites[GUILD] = [InviteInfo("vanity", 1, None)]
        result = run_async(tracker.handle_member_join(GUILD, 1))
        assert result.status is JoinStatus.UNKNOWN_INVITER
        assert "**Unknown**" in _logged(platform)[0]

    def test_log_failure_does_not_break_join(self, tracker, platform, engine):
        platform.invites[GUILD] = [InviteInfo("abc", 0, INVITER)]
        run_async(tracker.refresh_guild(GUILD))
        platform.invites[GUILD] = [InviteInfo("abc", 1, INVITER)]
        platform.fail.add("send_message")
        result = run_async(tracker.handle_member_join(GUILD, 1))
        assert result.status is JoinStatus.CREDITED
        assert ledger_service.credit_for(engine, GUILD, INVITER) == 1

    def test_leave_debits(self, tracker, platform, engine):
        platform.invites[GUILD] = [InviteInfo("abc", 0, INVITER)]
        run_async(tracker.refresh_guild(GUILD))
        platform.invites[GUILD] = [InviteInfo("abc", 1, INVITER)]
        run_async(tracker.handle_member_join(GUILD, 1))
        assert run_async(tracker.handle_member_leave(1)) == INVITER
        assert ledger_service.credit_for(engine, GUILD, INVITER) == 0


class TestInviteOwnership:
    def test_link_invite_binds_owner(self, tracker, platform, engine):
        platform.invites[GUILD] = [InviteInfo("abc", 2, None)]
        code = run_async(tracker.link_invite(GUILD, INVITER, "https://discord.gg/abc"))
        assert code == "abc"
        assert ledger_service.invite_owner(engine, "abc") == INVITER

    def test_link_invite_rejects_unknown_code(self, tracker, platform):
        platform.invites[GUILD] = [InviteInfo("abc", 2, None)]
        with pytest.raises(ValidationError, match="wasn't found"):
            run_async(tracker.link_invite(GUILD, INVITER, "zzz"))

    def test_link_invite_rejects_blank(self, tracker):
        with pytest.raises(ValidationError, match="Invalid invite code"):
            run_async(tracker.link_invite(GUILD, INVITER, "https://discord.gg/"))

    def test_link_invite_fetch_failure_propagates(self, tracker, platform):
        platform.fail.add("fetch_invites")
        with pytest.raises(ExternalCallFailure):
            run_async(tracker.link_invite(GUILD, INVITER, "abc"))

    def test_generated_invite_credits_owner(self, tracker, platform, engine):
        run_async(tracker.refresh_guild(GUILD))
        url = run_async(tracker.generate_invite(GUILD, 77, INVITER, user_tag="inviter#1"))
        code = url.rsplit("/", 1)[-1]
        assert ledger_service.invite_owner(engine, code) == INVITER
        assert tracker.cached(GUILD)[code] == 0

        platform.invites[GUILD] = [InviteInfo(code, 1, None)]
        result = run_async(tracker.handle_member_join(GUILD, 5))
        assert result.inviter_id == INVITER


class TestDescribeInviter:
    def test_report(self, tracker, platform, engine):
        ledger_service.record_join(engine, GUILD, 1, "abc", INVITER)
        ledger_service.record_join(engine, GUILD, 2, "abc", INVITER)
        ledger_service.bind_invite_owner(engine, "mine", INVITER)
        platform.member_tags[1] = "alice#0001"
        platform.invites[GUILD] = [InviteInfo("abc", 2, INVITER), InviteInfo("other", 1, 9)]

        report = run_async(tracker.describe_inviter(GUILD, INVITER))

        assert report.credited == 2
        # member 2 is no longer resolvable and is skipped
        assert [e.tag for e in report.active_members] == ["alice#0001"]
        assert report.codes == ["abc", "mine"]
        assert report.links[0].endswith("abc")
