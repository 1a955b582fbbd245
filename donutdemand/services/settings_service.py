"""
donutdemand.services.settings_service — Guild Settings & Panel Config
=====================================================================

Typed read/write access to ``guild_settings`` and ``panel_configs``.
Settings rows are created lazily with defaults the first time a guild is
touched and live as long as the guild does.

All functions are synchronous; call them from async code via
:func:`~donutdemand.database.engine.run_db`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from donutdemand.database.engine import get_session
from donutdemand.database.models import GuildSettings, PanelConfig
from donutdemand.engine.panel import PanelSettings, default_panel, validate_panel
from donutdemand.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Columns that ``update_settings`` may touch.
EDITABLE_FIELDS: frozenset[str] = frozenset({
    "join_log_channel_id",
    "feedback_channel_id",
    "claims_channel_id",
    "customer_role_id",
    "webhook_url",
    "automod_enabled",
    "automod_bypass_role_name",
})


# ---------------------------------------------------------------------------
# Guild settings
# ---------------------------------------------------------------------------
def get_or_create_settings(session: Session, guild_id: int) -> GuildSettings:
    """Fetch the settings row for *guild_id*, inserting defaults if absent."""
    row = session.get(GuildSettings, guild_id)
    if row is None:
        row = GuildSettings(
            guild_id=guild_id,
            staff_role_ids=[],
            invite_blacklist=[],
            automod_enabled=False,
            automod_bypass_role_name="automod",
            suspended=False,
        )
        session.add(row)
        session.flush()
        logger.info("Created default settings for guild %d", guild_id)
    return row


def get_settings(engine: Engine, guild_id: int) -> GuildSettings:
    """Return a detached copy of the guild's settings (created on demand)."""
    with get_session(engine) as session:
        row = get_or_create_settings(session, guild_id)
        session.flush()
        session.expunge(row)
        return row


def update_settings(engine: Engine, guild_id: int, **fields: Any) -> GuildSettings:
    """Set one or more scalar settings.

    Raises
    ------
    ValidationError
        If a field name isn't editable.
    """
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    webhook = fields.get("webhook_url")
    if webhook and not str(webhook).startswith(("http://", "https://")):
        raise ValidationError("Webhook URL must start with http:// or https://")

    with get_session(engine) as session:
        row = get_or_create_settings(session, guild_id)
        for key, value in fields.items():
            setattr(row, key, value)
        session.flush()
        session.expunge(row)
        logger.info("Updated settings for guild %d: %s", guild_id, sorted(fields))
        return row


def set_staff_role(engine: Engine, guild_id: int, role_id: int, *, enabled: bool) -> list[int]:
    """Add or remove *role_id* from the staff roles; return the new list."""
    with get_session(engine) as session:
        row = get_or_create_settings(session, guild_id)
        roles = [int(r) for r in (row.staff_role_ids or [])]
        if enabled and role_id not in roles:
            roles.append(role_id)
        elif not enabled and role_id in roles:
            roles.remove(role_id)
        row.staff_role_ids = roles
        return roles


def set_suspended(engine: Engine, guild_id: int, suspended: bool) -> None:
    with get_session(engine) as session:
        row = get_or_create_settings(session, guild_id)
        row.suspended = suspended
    logger.warning("Guild %d suspended=%s", guild_id, suspended)


def is_blacklisted(session: Session, guild_id: int, user_id: int) -> bool:
    row = session.get(GuildSettings, guild_id)
    if row is None:
        return False
    return user_id in {int(u) for u in (row.invite_blacklist or [])}


# ---------------------------------------------------------------------------
# Ticket panel configuration
# ---------------------------------------------------------------------------
def get_panel(engine: Engine, guild_id: int) -> PanelSettings:
    """Saved panel for the guild, or the built-in default."""
    with get_session(engine) as session:
        row = session.get(PanelConfig, guild_id)
        if row is None:
            return default_panel()
        return validate_panel(row.config)


def save_panel(engine: Engine, guild_id: int, panel: PanelSettings, *, actor_id: int) -> None:
    with get_session(engine) as session:
        row = session.get(PanelConfig, guild_id)
        if row is None:
            row = PanelConfig(guild_id=guild_id, config={})
            session.add(row)
        row.config = panel.to_json_dict()
        row.updated_by = actor_id
    logger.info("Panel config saved for guild %d by %d", guild_id, actor_id)


def reset_panel(engine: Engine, guild_id: int) -> bool:
    """Drop the saved panel; returns True if one existed."""
    with get_session(engine) as session:
        row = session.get(PanelConfig, guild_id)
        if row is None:
            return False
        session.delete(row)
        return True
