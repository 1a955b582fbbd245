"""
donutdemand.services.gate — Authorization Gate
==============================================

Cross-cutting permission checks consulted before any mutating workflow
operation.  The command layer converts a ``discord.Member`` into an
:class:`Actor`; everything here is pure and raises
:class:`~donutdemand.errors.AuthorizationError` on refusal.

Hierarchy::

    owner  ⊃  administrator  ⊃  staff (configured staff roles)

A suspended guild rejects every mutating operation except owner ones.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from donutdemand.errors import AuthorizationError

if TYPE_CHECKING:
    import discord

    from donutdemand.database.models import GuildSettings


@dataclass(frozen=True, slots=True)
class Actor:
    """The member performing an operation."""

    user_id: int
    role_ids: frozenset[int] = field(default_factory=frozenset)
    is_administrator: bool = False
    is_owner: bool = False
    display: str = ""

    @classmethod
    def from_member(cls, member: discord.Member | discord.User, *, owner_id: int) -> Actor:
        roles = getattr(member, "roles", None) or []
        perms = getattr(member, "guild_permissions", None)
        return cls(
            user_id=member.id,
            role_ids=frozenset(r.id for r in roles),
            is_administrator=bool(perms and perms.administrator),
            is_owner=member.id == owner_id,
            display=str(member),
        )

    @property
    def mention(self) -> str:
        return f"<@{self.user_id}>"


def has_any_role(actor: Actor, role_ids: Iterable[int]) -> bool:
    return any(int(r) in actor.role_ids for r in role_ids)


def is_admin(actor: Actor) -> bool:
    return actor.is_owner or actor.is_administrator


def is_staff(actor: Actor, settings: GuildSettings) -> bool:
    return is_admin(actor) or has_any_role(actor, settings.staff_role_ids or [])


# ---------------------------------------------------------------------------
# Raising checks
# ---------------------------------------------------------------------------
def require_owner(actor: Actor) -> None:
    if not actor.is_owner:
        raise AuthorizationError("Only the bot owner can do that.")


def require_active_guild(actor: Actor, settings: GuildSettings) -> None:
    if settings.suspended and not actor.is_owner:
        raise AuthorizationError("This server is suspended. Contact the bot owner.")


def require_admin(actor: Actor, settings: GuildSettings) -> None:
    require_active_guild(actor, settings)
    if not is_admin(actor):
        raise AuthorizationError("Admins only.")


def require_staff(actor: Actor, settings: GuildSettings) -> None:
    require_active_guild(actor, settings)
    if not is_staff(actor, settings):
        raise AuthorizationError("No permission.")


def require_staff_role(actor: Actor, settings: GuildSettings) -> None:
    """Holders of a configured staff role only; admins do not bypass."""
    require_active_guild(actor, settings)
    if not (actor.is_owner or has_any_role(actor, settings.staff_role_ids or [])):
        raise AuthorizationError("You don't have permission to use this.")


def require_ticket_closer(actor: Actor, settings: GuildSettings, opener_id: int) -> None:
    require_active_guild(actor, settings)
    if actor.user_id != opener_id and not is_staff(actor, settings):
        raise AuthorizationError("Only the opener or staff can close this.")
