"""
donutdemand.engine.parsing — Free-text Input Parsers
====================================================

Small pure helpers for the strings members type into commands:
durations (``1h30m``), invite links, giveaway message links and
link detection for automod.
"""

from __future__ import annotations

import re
from datetime import timedelta

from donutdemand.constants import MAX_DURATION
from donutdemand.errors import ValidationError

_DURATION_PART = re.compile(r"(\d+)([smhd])")
_DURATION_FULL = re.compile(r"^(?:\d+[smhd])+$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

_INVITE_PREFIX = re.compile(
    r"^https?://(www\.)?(discord\.gg|discord\.com/invite)/", re.IGNORECASE
)
_SNOWFLAKE = re.compile(r"^(\d{10,25})$")
_SNOWFLAKE_TAIL = re.compile(r"/(\d{10,25})$")

_URL_RE = re.compile(r"(https?://\S+)|(www\.\S+)", re.IGNORECASE)
_INVITE_RE = re.compile(r"(discord\.gg/\S+)|(discord\.com/invite/\S+)", re.IGNORECASE)


def parse_duration(text: str) -> timedelta:
    """Parse ``30m``, ``1h``, ``2d``, ``1h30m`` … into a :class:`timedelta`.

    Raises
    ------
    ValidationError
        If the string is empty, malformed, totals zero, or exceeds
        :data:`~donutdemand.constants.MAX_DURATION`.
    """
    compact = re.sub(r"\s+", "", (text or "").lower())
    if not compact or not _DURATION_FULL.match(compact):
        raise ValidationError("Invalid duration. Use formats like 30m, 1h, 2d.")

    total = sum(
        int(amount) * _UNIT_SECONDS[unit]
        for amount, unit in _DURATION_PART.findall(compact)
    )
    # Compare as plain seconds: timedelta() itself overflows on huge totals.
    if total > MAX_DURATION.total_seconds():
        raise ValidationError("Duration is too long.")
    return check_duration(timedelta(seconds=total))


def check_duration(delta: timedelta) -> timedelta:
    """Reject zero, negative and over-long durations."""
    if delta <= timedelta(0):
        raise ValidationError("Duration must be greater than zero.")
    if delta > MAX_DURATION:
        raise ValidationError("Duration is too long.")
    return delta


def format_duration(delta: timedelta) -> str:
    """Render a timedelta compactly, e.g. ``1d 2h 5m``."""
    seconds = int(delta.total_seconds())
    parts = []
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        amount, seconds = divmod(seconds, size)
        if amount:
            parts.append(f"{amount}{unit}")
    return " ".join(parts) or "0s"


def extract_invite_code(text: str) -> str | None:
    """Strip a ``discord.gg/…`` link down to its bare invite code."""
    if not text:
        return None
    code = _INVITE_PREFIX.sub("", text.strip())
    code = re.sub(r"[\s/]+", "", code)[:64]
    return code or None


def extract_message_id(text: str) -> int | None:
    """Accept a raw message id or a message link; return the id."""
    if not text:
        return None
    s = text.strip()
    match = _SNOWFLAKE_TAIL.search(s) or _SNOWFLAKE.match(s)
    return int(match.group(1)) if match else None


def contains_link(content: str | None) -> bool:
    """True if *content* holds a web link or a Discord invite."""
    if not content:
        return False
    return bool(_URL_RE.search(content) or _INVITE_RE.search(content))
