"""
donutdemand.engine.tickets — Ticket Descriptor Encoding
=======================================================

A ticket has no table of its own: its opener, creation time and type are
packed into the channel topic as ``opener:<id>;created:<ms>;type:<id>``.
That string format is only handled here.  Everything past this module
works with the structured :class:`TicketDescriptor`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime

_OPENER = re.compile(r"opener:(\d{10,25})", re.IGNORECASE)
_CREATED = re.compile(r"created:(\d{10,20})", re.IGNORECASE)
_TYPE = re.compile(r"type:([a-z0-9_\-]{1,100})", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class TicketDescriptor:
    """Structured form of a ticket channel's topic."""

    opener_id: int
    created_at: datetime | None = None
    type_id: str | None = None

    def to_topic(self) -> str:
        created_ms = int((self.created_at or datetime.now(UTC)).timestamp() * 1000)
        return f"opener:{self.opener_id};created:{created_ms};type:{self.type_id or ''}"

    @classmethod
    def parse(cls, topic: str | None) -> TicketDescriptor | None:
        """Parse a channel topic; ``None`` if it isn't a ticket channel."""
        if not topic:
            return None
        opener = _OPENER.search(topic)
        if opener is None:
            return None
        created = _CREATED.search(topic)
        type_id = _TYPE.search(topic)
        return cls(
            opener_id=int(opener.group(1)),
            created_at=(
                datetime.fromtimestamp(int(created.group(1)) / 1000, tz=UTC)
                if created else None
            ),
            type_id=type_id.group(1) if type_id else None,
        )


def clean_name(text: str | None) -> str:
    """Lower-case slug suitable for a channel name fragment (≤ 24 chars)."""
    slug = re.sub(r"[^a-z0-9]", "-", (text or "").lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:24]


def ticket_channel_name(type_key: str, username: str) -> str:
    """``<type key>-<clean username>``, capped at 90 chars."""
    return f"{type_key}-{clean_name(username)}"[:90]
