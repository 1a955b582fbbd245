"""
DonutDemand — Invite Rewards, Tickets & Giveaways for a Discord Shop
====================================================================
Tracks who invited whom, pays out invite rewards through a webhook,
runs support tickets and hosts time-delayed giveaways.  All durable
state lives in SQL so the bot can restart at any time.

Package layout::

    donutdemand/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Thresholds, timer caps, colours
    ├── errors.py          # Workflow error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session + run_db
    │   └── models.py      # Ledger, settings, panel, giveaway tables
    ├── engine/
    │   ├── attribution.py # Invite snapshot diff + credit arithmetic
    │   ├── selection.py   # Fisher–Yates winner selection
    │   ├── tickets.py     # Ticket descriptor (channel topic) codec
    │   ├── parsing.py     # Durations, invite codes, message links
    │   └── panel.py       # Ticket panel schema (pydantic)
    ├── services/
    │   ├── ledger_service.py    # Attribution ledger persistence
    │   ├── invite_tracker.py    # Snapshot cache + join/leave attribution
    │   ├── reward_service.py    # Reward eligibility + payout webhook
    │   ├── ticket_service.py    # Ticket state machine + operation timers
    │   ├── giveaway_service.py  # Giveaway store + restart-safe scheduler
    │   ├── settings_service.py  # Guild settings + panel config
    │   ├── community_service.py # Stickies, vouch count, automod role
    │   ├── gate.py              # Authorization checks
    │   ├── platform.py          # Discord capability interface
    │   ├── embeds.py            # Embed / button builders
    │   └── locks.py             # Per-key asyncio locks
    └── bot/
        ├── core.py        # Bot subclass, cog loader, startup recovery
        └── cogs/
            ├── invites.py      # /invites, /addinvites, /blacklist, /ledger …
            ├── tickets.py      # /panel, /close, /operation
            ├── giveaways.py    # /giveaway, /end, /reroll
            ├── rewards.py      # /claim, /rewardpanel
            ├── settings.py     # /config, /suspend
            ├── automod.py      # Link filter
            ├── moderation.py   # !stick, !mute, !ban, !kick, !purge
            ├── community.py    # /embed, /vouches
            └── interactions.py # Button / modal routing by custom_id
"""

__version__ = "0.1.0"
