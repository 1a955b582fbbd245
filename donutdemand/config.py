"""
donutdemand.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for **infrastructure-only** settings (primary guild,
bot owner, payout rate, timer delays).  Per-guild configuration (staff
roles, channels, blacklist, webhook) lives in the ``guild_settings``
table and is edited with ``/config`` commands.

Usage::

    from donutdemand.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.guild_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from donutdemand.constants import (
    DEFAULT_PAYOUT_PER_INVITE,
    REWARD_INVITE_THRESHOLD,
    TICKET_CLOSE_DELAY_SECONDS,
)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BotConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Discord
    guild_id: int  # Primary guild snowflake (slash commands are synced here)
    owner_id: int  # Bot owner; bypasses staff checks, may suspend guilds

    # Reward workflow
    payout_per_invite: int = DEFAULT_PAYOUT_PER_INVITE
    reward_invite_threshold: int = REWARD_INVITE_THRESHOLD

    # Tickets
    ticket_close_delay_seconds: float = TICKET_CLOSE_DELAY_SECONDS


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> BotConfig:
    """Read *path* and return a :class:`BotConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return BotConfig(
        guild_id=int(raw["guild_id"]),
        owner_id=int(raw["owner_id"]),
        payout_per_invite=int(raw.get("payout_per_invite", DEFAULT_PAYOUT_PER_INVITE)),
        reward_invite_threshold=int(
            raw.get("reward_invite_threshold", REWARD_INVITE_THRESHOLD)
        ),
        ticket_close_delay_seconds=float(
            raw.get("ticket_close_delay_seconds", TICKET_CLOSE_DELAY_SECONDS)
        ),
    )
