"""
donutdemand.bot.core — Bot Instance & Cog Loader
================================================

Defines :class:`DonutBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``).
2. Builds the platform adapter and the workflow services once, so every
   cog shares the same snapshot cache, timers and locks.
3. Loads every cog listed in :data:`EXTENSIONS`.
4. On ready: syncs the slash-command tree, primes the invite snapshot
   cache for each guild, makes sure the automod bypass role exists and
   re-arms pending giveaway timers.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from donutdemand.config import BotConfig
from donutdemand.constants import COMMAND_PREFIX
from donutdemand.errors import ExternalCallFailure
from donutdemand.services.community_service import StickyBoard, ensure_automod_role
from donutdemand.services.gate import Actor
from donutdemand.services.giveaway_service import GiveawayScheduler
from donutdemand.services.invite_tracker import InviteTracker
from donutdemand.services.locks import KeyedLocks
from donutdemand.services.platform import DiscordPlatform
from donutdemand.services.reward_service import RewardService
from donutdemand.services.ticket_service import TicketService

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "donutdemand.bot.cogs.invites",
    "donutdemand.bot.cogs.tickets",
    "donutdemand.bot.cogs.giveaways",
    "donutdemand.bot.cogs.rewards",
    "donutdemand.bot.cogs.settings",
    "donutdemand.bot.cogs.automod",
    "donutdemand.bot.cogs.moderation",
    "donutdemand.bot.cogs.community",
    "donutdemand.bot.cogs.interactions",
]


class DonutBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`BotConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: BotConfig, engine: Engine) -> None:
        # Privileged intents (enable in the Developer Portal):
        #   GUILD_MEMBERS   — join/leave attribution
        #   MESSAGE_CONTENT — automod link filter
        intents = discord.Intents.default()
        intents.members = True
        intents.message_content = True
        intents.invites = True
        intents.presences = False

        super().__init__(command_prefix=commands.when_mentioned_or(COMMAND_PREFIX), intents=intents)

        self.cfg = cfg
        self.engine = engine
        self.platform = DiscordPlatform(self)
        self.locks = KeyedLocks()

        self.invites = InviteTracker(engine, self.platform, locks=self.locks)
        self.tickets = TicketService(
            engine, self.platform,
            close_delay=cfg.ticket_close_delay_seconds,
            locks=self.locks,
        )
        self.giveaways = GiveawayScheduler(engine, self.platform, locks=self.locks)
        self.rewards = RewardService(
            engine, self.platform,
            payout_per_invite=cfg.payout_per_invite,
            threshold=cfg.reward_invite_threshold,
        )
        self.stickies = StickyBoard(self.platform, locks=self.locks)

    def actor(self, user: discord.Member | discord.User) -> Actor:
        """Wrap the invoking member for :mod:`donutdemand.services.gate`."""
        return Actor.from_member(user, owner_id=self.cfg.owner_id)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all cogs.  One broken cog shouldn't take down the bot."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        # --- Slash-command sync ---------------------------------------------
        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        # --- Invite snapshot cache and automod role -------------------------
        for guild in self.guilds:
            await self._ensure_automod_role(guild)
            snapshot = await self.invites.refresh_guild(guild.id)
            logger.info(
                "Invite cache for %s: %s",
                guild.name, f"{len(snapshot)} codes" if snapshot is not None else "unavailable",
            )

        # --- Giveaway timers ------------------------------------------------
        await self.giveaways.resume_pending()

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self._ensure_automod_role(guild)
        await self.invites.refresh_guild(guild.id)

    async def _ensure_automod_role(self, guild: discord.Guild) -> None:
        try:
            await ensure_automod_role(self.engine, self.platform, guild.id)
        except ExternalCallFailure as exc:
            logger.warning("Automod role setup failed in %s: %s", guild.name, exc)

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        self.giveaways.shutdown()
        self.tickets.shutdown()
        await super().close()
