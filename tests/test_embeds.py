"""
tests/test_embeds.py — Embed & Component Builders
=================================================

Views need a running event loop, so those builders are exercised inside
``run_async``.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from conftest import run_async

from donutdemand.constants import PANEL_COLOR
from donutdemand.engine.panel import default_panel
from donutdemand.errors import ValidationError
from donutdemand.services.embeds import (
    GIVEAWAY_JOIN_PREFIX,
    REWARD_CLAIM_ID,
    build_claim_embed,
    build_close_dm_embed,
    build_custom_embed,
    build_giveaway_embed,
    build_giveaway_view,
    build_panel_embed,
    build_panel_view,
    build_reward_panel_view,
    build_ticket_intake_embed,
    mention_list,
    modal_values,
)

ENDS = datetime(2024, 1, 1, tzinfo=UTC)


def _embed_kwargs(**overrides):
    kwargs = dict(
        prize="Nitro", host_id=1, ends_at=ENDS, entry_count=3,
        winner_count=2, min_invites=0, ended=False, message_id=99,
    )
    kwargs.update(overrides)
    return kwargs


class TestGiveawayEmbed:
    def test_title_and_footer(self):
        embed = build_giveaway_embed(**_embed_kwargs())
        assert embed.title == "\U0001f381 GIVEAWAY: Nitro"
        assert embed.footer.text == "Giveaway Message ID: 99"
        assert "Entries: **3**" in embed.description

    def test_min_invites_and_status(self):
        embed = build_giveaway_embed(**_embed_kwargs(min_invites=4, ended=True))
        assert "Min invites to join: **4**" in embed.description
        assert "STATUS: ENDED" in embed.description

    def test_view_disabled_until_message_known(self):
        async def build():
            return build_giveaway_view(None, ended=False), build_giveaway_view(99, ended=False)

        pending, live = run_async(build())
        assert pending.children[0].disabled
        assert not live.children[0].disabled
        assert live.children[0].custom_id == f"{GIVEAWAY_JOIN_PREFIX}99"

    def test_view_disabled_when_ended(self):
        async def build():
            return build_giveaway_view(99, ended=True)

        assert run_async(build()).children[0].disabled


class TestPanel:
    def test_panel_embed_colour(self):
        embed = build_panel_embed(default_panel())
        assert embed.colour.value == 0x2B2D31

    def test_panel_view_buttons(self):
        async def build():
            return build_panel_view(default_panel())

        view = run_async(build())
        assert [b.custom_id for b in view.children] == [
            "ticket:ticket_support", "ticket:ticket_claim",
            "ticket:ticket_sell", "ticket:ticket_rewards",
        ]

    def test_reward_panel_button(self):
        async def build():
            return build_reward_panel_view()

        assert run_async(build()).children[0].custom_id == REWARD_CLAIM_ID


class TestMessages:
    def test_modal_values(self):
        data = {"components": [
            {"components": [{"custom_id": "mc", "value": " Steve "}]},
            {"components": [{"custom_id": "need", "value": None}]},
        ]}
        assert modal_values(data) == {"mc": "Steve", "need": ""}
        assert modal_values(None) == {}

    def test_intake_embed(self):
        embed = build_ticket_intake_embed("Help & Support", "steve", "steve#1", {"mc": "Steve"})
        assert embed.title == "Help & Support (steve)"
        assert [f.value for f in embed.fields] == ["Steve", "steve#1", "N/A"]

    def test_close_dm_mentions_feedback_channel(self):
        embed = build_close_dm_embed(
            guild_name="Donut", ticket_name="help-support-steve", type_label=None,
            closed_by="mod#1", reason="done", opened_at=None, closed_at=ENDS,
            feedback_channel_id=42,
        )
        fields = {f.name: f.value for f in embed.fields}
        assert fields["Type"] == "Unknown"
        assert fields["Opened"] == "Unknown"
        assert "<#42>" in fields["Next Steps"]

    def test_claim_embed(self):
        embed = build_claim_embed(user_id=5, invites=7, amount=21, username="Steve", note="hi")
        fields = {f.name: f.value for f in embed.fields}
        assert fields["Payout"] == "$21"
        assert fields["Note"] == "hi"

    def test_mention_list(self):
        assert mention_list([1, 2]) == "<@1>, <@2>"
        assert mention_list([]) == ""


class TestCustomEmbed:
    def test_full_embed(self):
        embed = build_custom_embed(
            title="Sale", description="50% off", color="#ff0000",
            url="https://shop.example.com", thumbnail="https://img.example.com/t.png",
            image="https://img.example.com/i.png",
        )
        assert embed.title == "Sale"
        assert embed.description == "50% off"
        assert embed.color.value == 0xFF0000
        assert embed.url == "https://shop.example.com"
        assert embed.thumbnail.url == "https://img.example.com/t.png"
        assert embed.image.url == "https://img.example.com/i.png"

    def test_bad_colour_falls_back(self):
        assert build_custom_embed(title="x", color="red").color.value == PANEL_COLOR
        assert build_custom_embed(title="x").color.value == PANEL_COLOR

    def test_long_text_truncated(self):
        embed = build_custom_embed(title="t" * 300, description="d" * 5000)
        assert len(embed.title) == 256
        assert len(embed.description) == 4096

    def test_image_alone_is_enough(self):
        assert build_custom_embed(image="https://img.example.com/i.png").title is None

    def test_empty_rejected(self):
        with pytest.raises(ValidationError, match="at least"):
            build_custom_embed(color="#ffffff", url="https://example.com")
