"""
tests/test_ticket_descriptor.py — Ticket Topic Encoding
=======================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

from donutdemand.engine.tickets import TicketDescriptor, clean_name, ticket_channel_name


class TestTicketDescriptor:
    def test_topic_format(self):
        created = datetime(2024, 1, 1, tzinfo=UTC)
        desc = TicketDescriptor(opener_id=123456789012345678, created_at=created, type_id="ticket_support")
        assert desc.to_topic() == (
            f"opener:123456789012345678;created:{int(created.timestamp() * 1000)};type:ticket_support"
        )

    def test_parse_recovers_fields(self):
        created = datetime(2024, 5, 6, 7, 8, 9, tzinfo=UTC)
        desc = TicketDescriptor(opener_id=123456789012345678, created_at=created, type_id="ticket_claim")
        parsed = TicketDescriptor.parse(desc.to_topic())
        assert parsed == desc

    def test_parse_non_ticket_topic(self):
        assert TicketDescriptor.parse(None) is None
        assert TicketDescriptor.parse("General chat") is None

    def test_parse_opener_only(self):
        parsed = TicketDescriptor.parse("opener:123456789012345678")
        assert parsed is not None
        assert parsed.opener_id == 123456789012345678
        assert parsed.created_at is None
        assert parsed.type_id is None


class TestChannelNames:
    def test_clean_name(self):
        assert clean_name("Cool_User!!") == "cool-user"
        assert clean_name(None) == ""

    def test_clean_name_truncated(self):
        assert len(clean_name("a" * 50)) == 24

    def test_ticket_channel_name(self):
        assert ticket_channel_name("help-support", "Steve") == "help-support-steve"
