"""
donutdemand.constants — Shared Constants
========================================

Single source of truth for thresholds, timer limits and presentation
colours.  Import from here instead of duplicating in cogs and services.
"""

from __future__ import annotations

from datetime import timedelta

# ---------------------------------------------------------------------------
# Reward workflow
# ---------------------------------------------------------------------------
REWARD_INVITE_THRESHOLD = 5
DEFAULT_PAYOUT_PER_INVITE = 3
PAYOUT_TIMEOUT_SECONDS = 10.0

# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------
# Longest delay a single platform timer can represent (signed 32-bit ms).
MAX_TIMER_DELAY = timedelta(milliseconds=2_147_483_647)
# Longest giveaway or operation timer a command may request.
MAX_DURATION = timedelta(days=3650)

TICKET_CLOSE_DELAY_SECONDS = 3.0
AUTOMOD_WARNING_TTL_SECONDS = 5.0

# ---------------------------------------------------------------------------
# Ticket panel limits
# ---------------------------------------------------------------------------
MAX_TICKET_TYPES = 4
MAX_PANEL_JSON_LENGTH = 6000

# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------
PANEL_COLOR = 0x2B2D31
CLOSED_COLOR = 0xED4245
GIVEAWAY_COLOR = 0xED4245
CLAIM_COLOR = 0x57F287
INVITE_LINK_BASE = "https://discord.gg/"

# ---------------------------------------------------------------------------
# Admin prefix commands
# ---------------------------------------------------------------------------
COMMAND_PREFIX = "!"
MUTE_DURATION = timedelta(minutes=5)
PURGE_LIMIT = 100
