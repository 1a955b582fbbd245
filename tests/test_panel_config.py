"""
tests/test_panel_config.py — Ticket Panel Schema
================================================
"""

from __future__ import annotations

import copy
import json

import pytest

from donutdemand.engine.panel import (
    DEFAULT_PANEL,
    default_panel,
    parse_hex_color,
    parse_panel_json,
    validate_panel,
)
from donutdemand.errors import ValidationError


def _panel(**overrides):
    data = copy.deepcopy(DEFAULT_PANEL)
    data.update(overrides)
    return data


class TestDefaultPanel:
    def test_has_four_ticket_types(self):
        panel = default_panel()
        assert [t.id for t in panel.tickets] == [
            "ticket_support", "ticket_claim", "ticket_sell", "ticket_rewards",
        ]

    def test_rewards_requires_invites(self):
        assert default_panel().ticket_type("ticket_rewards").min_invites == 5

    def test_unknown_type(self):
        assert default_panel().ticket_type("nope") is None

    def test_json_dict_uses_aliases(self):
        data = default_panel().to_json_dict()
        assert "mcLabel" in data["modal"]
        assert validate_panel(data) == default_panel()


class TestValidation:
    def test_valid_json(self):
        panel = parse_panel_json(json.dumps(DEFAULT_PANEL))
        assert panel.embed.title == "Tickets"

    def test_invalid_json(self):
        with pytest.raises(ValidationError, match="Invalid JSON"):
            parse_panel_json("{not json")

    def test_not_an_object(self):
        with pytest.raises(ValidationError, match="JSON object"):
            parse_panel_json("[1, 2]")

    def test_too_long(self):
        with pytest.raises(ValidationError, match="too long"):
            parse_panel_json(" " * 10_000)

    def test_empty_tickets_rejected(self):
        with pytest.raises(ValidationError):
            validate_panel(_panel(tickets=[]))

    def test_too_many_tickets_rejected(self):
        tickets = []
        for i in range(5):
            t = copy.deepcopy(DEFAULT_PANEL["tickets"][0])
            t["id"] = f"t{i}"
            tickets.append(t)
        with pytest.raises(ValidationError):
            validate_panel(_panel(tickets=tickets))

    def test_duplicate_ids_rejected(self):
        first = DEFAULT_PANEL["tickets"][0]
        with pytest.raises(ValidationError, match="Duplicate ticket id"):
            validate_panel(_panel(tickets=[first, copy.deepcopy(first)]))

    def test_bad_button_style(self):
        t = copy.deepcopy(DEFAULT_PANEL["tickets"][0])
        t["button"]["style"] = "Blurple"
        with pytest.raises(ValidationError):
            validate_panel(_panel(tickets=[t]))

    def test_bad_color(self):
        data = _panel()
        data["embed"]["color"] = "red"
        with pytest.raises(ValidationError, match="hex"):
            validate_panel(data)

    def test_error_names_field(self):
        data = _panel()
        del data["embed"]["title"]
        with pytest.raises(ValidationError, match="embed.title"):
            validate_panel(data)


class TestHexColor:
    @pytest.mark.parametrize("value", ["#2b2d31", "0x2b2d31", "2b2d31"])
    def test_accepts(self, value):
        assert parse_hex_color(value) == 0x2B2D31

    @pytest.mark.parametrize("value", [None, "", "#fff", "zzzzzz"])
    def test_rejects(self, value):
        assert parse_hex_color(value) is None
