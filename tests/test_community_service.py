"""
tests/test_community_service.py — Sticky Messages, Vouches & Automod Role
=========================================================================
"""

from __future__ import annotations

import pytest
from conftest import run_async

from donutdemand.errors import ExternalCallFailure, ValidationError
from donutdemand.services.community_service import (
    StickyBoard,
    count_vouches,
    ensure_automod_role,
)
from donutdemand.services.settings_service import update_settings

GUILD = 1000
CHANNEL = 2000
VOUCHES = 4444


@pytest.fixture
def board(platform):
    return StickyBoard(platform)


class TestSticky:
    def test_stick_posts_and_remembers(self, board, platform):
        note = run_async(board.stick(CHANNEL, "  Read the rules!  "))
        assert note.content == "Read the rules!"
        assert platform.sent[-1]["content"] == "Read the rules!"
        assert note.message_id == platform.sent[-1]["message_id"]
        assert CHANNEL in board

    def test_blank_text_rejected(self, board, platform):
        with pytest.raises(ValidationError, match="!stick"):
            run_async(board.stick(CHANNEL, "   "))
        assert platform.sent == []
        assert board.get(CHANNEL) is None

    def test_restick_replaces_old_copy(self, board, platform):
        first = run_async(board.stick(CHANNEL, "one")).message_id
        run_async(board.stick(CHANNEL, "two"))
        assert platform.deleted_messages == [(CHANNEL, first)]
        assert board.get(CHANNEL).content == "two"

    def test_bump_moves_sticky_to_bottom(self, board, platform):
        old = run_async(board.stick(CHANNEL, "Read the rules!")).message_id
        assert run_async(board.bump(CHANNEL, 12345)) is True
        assert platform.deleted_messages == [(CHANNEL, old)]
        assert platform.sent[-1]["content"] == "Read the rules!"
        assert board.get(CHANNEL).message_id == platform.sent[-1]["message_id"]

    def test_own_message_does_not_bump(self, board, platform):
        note = run_async(board.stick(CHANNEL, "hi"))
        assert run_async(board.bump(CHANNEL, note.message_id)) is False
        assert len(platform.sent) == 1

    def test_bump_without_sticky(self, board, platform):
        assert run_async(board.bump(CHANNEL, 1)) is False
        assert platform.sent == []

    def test_bump_survives_missing_old_copy(self, board, platform):
        run_async(board.stick(CHANNEL, "hi"))
        platform.fail.add("delete_message")
        assert run_async(board.bump(CHANNEL, 1)) is True
        assert len(platform.sent) == 2

    def test_failed_repost_keeps_note(self, board, platform):
        run_async(board.stick(CHANNEL, "hi"))
        platform.fail.add("send_message")
        assert run_async(board.bump(CHANNEL, 1)) is False
        note = board.get(CHANNEL)
        assert note.content == "hi"
        assert note.message_id is None

    def test_unstick(self, board, platform):
        message_id = run_async(board.stick(CHANNEL, "hi")).message_id
        assert run_async(board.unstick(CHANNEL)) is True
        assert platform.deleted_messages == [(CHANNEL, message_id)]
        assert CHANNEL not in board
        assert run_async(board.unstick(CHANNEL)) is False


class TestVouches:
    def test_counts_feedback_channel(self, db_engine, platform):
        update_settings(db_engine, GUILD, feedback_channel_id=VOUCHES)
        platform.message_counts[VOUCHES] = 237
        assert run_async(count_vouches(db_engine, platform, GUILD)) == 237

    def test_unconfigured(self, db_engine, platform):
        with pytest.raises(ValidationError, match="vouches channel"):
            run_async(count_vouches(db_engine, platform, GUILD))

    def test_unreadable_channel(self, db_engine, platform):
        update_settings(db_engine, GUILD, feedback_channel_id=VOUCHES)
        platform.fail.add("count_messages")
        with pytest.raises(ExternalCallFailure, match="vouches channel"):
            run_async(count_vouches(db_engine, platform, GUILD))


class TestAutomodRole:
    def test_creates_missing_role(self, db_engine, platform):
        role_id = run_async(ensure_automod_role(db_engine, platform, GUILD))
        assert platform.guild_roles[GUILD] == {"automod": role_id}

    def test_reuses_existing_role(self, db_engine, platform):
        platform.guild_roles[GUILD] = {"automod": 77}
        assert run_async(ensure_automod_role(db_engine, platform, GUILD)) == 77

    def test_uses_configured_name(self, db_engine, platform):
        update_settings(db_engine, GUILD, automod_bypass_role_name="Links OK")
        run_async(ensure_automod_role(db_engine, platform, GUILD))
        assert "links ok" in platform.guild_roles[GUILD]

    def test_without_manage_roles(self, db_engine, platform):
        platform.can_manage_roles = False
        assert run_async(ensure_automod_role(db_engine, platform, GUILD)) is None
