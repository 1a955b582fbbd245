"""
tests/conftest.py — Shared Test Fixtures
========================================
"""

from __future__ import annotations

import asyncio
import itertools

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from donutdemand.database.models import Base
from donutdemand.engine.attribution import InviteInfo
from donutdemand.errors import ExternalCallFailure
from donutdemand.services.gate import Actor
from donutdemand.services.platform import ChannelRef

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all DonutDemand tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` behind ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# In-memory platform
# ---------------------------------------------------------------------------
class FakePlatform:
    """Records every capability call; ``fail`` lists calls that should raise."""

    def __init__(self) -> None:
        self.invites: dict[int, list[InviteInfo]] = {}
        self.channels: dict[int, ChannelRef] = {}
        self.guild_channels: dict[int, list[int]] = {}
        self.member_tags: dict[int, str] = {}
        self.sent: list[dict] = []
        self.edits: list[dict] = []
        self.dms: list[dict] = []
        self.roles: list[tuple[int, int, int]] = []
        self.deleted_channels: list[int] = []
        self.created_channels: list[dict] = []
        self.deleted_messages: list[tuple[int, int]] = []
        self.guild_roles: dict[int, dict[str, int]] = {}
        self.can_manage_roles = True
        self.message_counts: dict[int, int] = {}
        self.fail: set[str] = set()
        self._ids = itertools.count(900_000_000_000_000_001)

    def _check(self, name: str) -> None:
        if name in self.fail:
            raise ExternalCallFailure(f"{name} failed")

    def add_channel(self, guild_id: int, channel_id: int, name: str, topic: str | None = None) -> ChannelRef:
        ref = ChannelRef(id=channel_id, name=name, topic=topic)
        self.channels[channel_id] = ref
        self.guild_channels.setdefault(guild_id, []).append(channel_id)
        return ref

    async def fetch_invites(self, guild_id):
        self._check("fetch_invites")
        return list(self.invites.get(guild_id, []))

    async def create_invite(self, channel_id, *, reason):
        self._check("create_invite")
        return f"gen{next(self._ids) % 100000}"

    async def send_message(self, channel_id, content=None, *, embed=None, view=None):
        self._check("send_message")
        message_id = next(self._ids)
        self.sent.append({
            "channel_id": channel_id, "message_id": message_id,
            "content": content, "embed": embed, "view": view,
        })
        return message_id

    async def edit_message(self, channel_id, message_id, *, embed=None, view=None):
        self._check("edit_message")
        self.edits.append({
            "channel_id": channel_id, "message_id": message_id, "embed": embed, "view": view,
        })

    async def delete_message(self, channel_id, message_id):
        self._check("delete_message")
        self.deleted_messages.append((channel_id, message_id))

    async def send_direct(self, user_id, content=None, *, embed=None):
        self._check("send_direct")
        self.dms.append({"user_id": user_id, "content": content, "embed": embed})

    async def get_channel(self, channel_id):
        self._check("get_channel")
        return self.channels.get(channel_id)

    async def list_text_channels(self, guild_id):
        self._check("list_text_channels")
        return [self.channels[c] for c in self.guild_channels.get(guild_id, []) if c in self.channels]

    async def create_ticket_channel(self, guild_id, *, category_name, name, topic, opener_id, staff_role_ids):
        self._check("create_ticket_channel")
        self.created_channels.append({
            "guild_id": guild_id, "category": category_name, "name": name,
            "topic": topic, "opener_id": opener_id, "staff_role_ids": staff_role_ids,
        })
        return self.add_channel(guild_id, next(self._ids), name, topic)

    async def delete_channel(self, channel_id, *, reason=None):
        self._check("delete_channel")
        self.channels.pop(channel_id, None)
        self.deleted_channels.append(channel_id)

    async def add_role(self, guild_id, user_id, role_id, *, reason=None):
        self._check("add_role")
        self.roles.append((guild_id, user_id, role_id))

    async def fetch_member_tag(self, guild_id, user_id):
        self._check("fetch_member_tag")
        return self.member_tags.get(user_id)

    async def count_messages(self, channel_id):
        self._check("count_messages")
        return self.message_counts.get(channel_id, 0)

    async def ensure_role(self, guild_id, name, *, reason=None):
        self._check("ensure_role")
        roles = self.guild_roles.setdefault(guild_id, {})
        if name.lower() in roles:
            return roles[name.lower()]
        if not self.can_manage_roles:
            return None
        roles[name.lower()] = next(self._ids)
        return roles[name.lower()]


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


def make_actor(user_id: int = 1, *, roles=(), admin: bool = False, owner: bool = False) -> Actor:
    return Actor(
        user_id=user_id,
        role_ids=frozenset(roles),
        is_administrator=admin,
        is_owner=owner,
        display=f"user{user_id}#0001",
    )
