"""
donutdemand.services.embeds — Discord embed & component builders
================================================================

All embed and button construction lives here so workflows and cogs only
supply data.  Views are built fresh on each call and never carry
callbacks: button clicks are routed by ``custom_id`` prefix in
:mod:`donutdemand.bot.cogs.interactions`, which survives restarts.

Custom-id prefixes:

- ``ticket:<type id>``        panel button → intake modal
- ``ticket_modal:<type id>``  intake modal submit → open ticket
- ``gw_join:<message id>``    giveaway join / leave toggle
- ``reward_claim``            reward claim button → claim modal
- ``reward_claim_modal``      claim modal submit → payout
"""

from __future__ import annotations

from datetime import datetime

import discord

from donutdemand.constants import (
    CLAIM_COLOR,
    CLOSED_COLOR,
    GIVEAWAY_COLOR,
    PANEL_COLOR,
)
from donutdemand.engine.panel import PanelSettings, parse_hex_color
from donutdemand.errors import ValidationError

TICKET_PREFIX = "ticket:"
TICKET_MODAL_PREFIX = "ticket_modal:"
GIVEAWAY_JOIN_PREFIX = "gw_join:"
REWARD_CLAIM_ID = "reward_claim"
REWARD_MODAL_ID = "reward_claim_modal"

# Text input ids inside the modals
TICKET_FIELD_MC = "mc"
TICKET_FIELD_NEED = "need"
CLAIM_FIELD_USERNAME = "username"
CLAIM_FIELD_NOTE = "note"

_BUTTON_STYLES = {
    "Primary": discord.ButtonStyle.primary,
    "Secondary": discord.ButtonStyle.secondary,
    "Success": discord.ButtonStyle.success,
    "Danger": discord.ButtonStyle.danger,
}


def _stamp(when: datetime | None) -> str:
    if when is None:
        return "Unknown"
    unix = int(when.timestamp())
    return f"<t:{unix}:F> (<t:{unix}:R>)"


# ---------------------------------------------------------------------------
# Ticket panel
# ---------------------------------------------------------------------------
def build_panel_embed(panel: PanelSettings) -> discord.Embed:
    color = parse_hex_color(panel.embed.color)
    return discord.Embed(
        title=panel.embed.title[:256],
        description=panel.embed.description[:4000],
        color=PANEL_COLOR if color is None else color,
    )


def build_panel_view(panel: PanelSettings) -> discord.ui.View:
    """One button per ticket type, ``custom_id = ticket:<id>``."""
    view = discord.ui.View(timeout=None)
    for t in panel.tickets:
        view.add_item(discord.ui.Button(
            custom_id=f"{TICKET_PREFIX}{t.id}",
            label=(t.button.label or t.label)[:80],
            style=_BUTTON_STYLES.get(t.button.style, discord.ButtonStyle.primary),
            emoji=t.button.emoji or None,
        ))
    return view


def build_ticket_modal(panel: PanelSettings, type_id: str) -> discord.ui.Modal:
    """Intake form shown after a panel button press."""
    modal = discord.ui.Modal(
        title=panel.modal.title[:45],
        custom_id=f"{TICKET_MODAL_PREFIX}{type_id}",
        timeout=None,
    )
    modal.add_item(discord.ui.TextInput(
        label=panel.modal.mc_label[:45],
        custom_id=TICKET_FIELD_MC,
        style=discord.TextStyle.short,
        max_length=32,
        required=True,
    ))
    modal.add_item(discord.ui.TextInput(
        label=panel.modal.need_label[:45],
        custom_id=TICKET_FIELD_NEED,
        style=discord.TextStyle.paragraph,
        max_length=1000,
        required=True,
    ))
    return modal


def modal_values(data: dict | None) -> dict[str, str]:
    """Flatten a modal-submit payload into ``{custom_id: value}``."""
    values: dict[str, str] = {}
    for row in (data or {}).get("components", []):
        for item in row.get("components", []):
            if "custom_id" in item:
                values[item["custom_id"]] = (item.get("value") or "").strip()
    return values


def build_ticket_intake_embed(
    type_label: str,
    username: str,
    user_tag: str,
    answers: dict[str, str],
) -> discord.Embed:
    """Summary of the intake modal, posted as the ticket's first message."""
    embed = discord.Embed(title=f"{type_label} ({username})", color=PANEL_COLOR)
    embed.add_field(
        name="Minecraft Username",
        value=(answers.get("mc") or "N/A")[:64],
        inline=True,
    )
    embed.add_field(name="Discord User", value=user_tag, inline=True)
    embed.add_field(
        name="What they need",
        value=(answers.get("need") or "N/A")[:1024],
        inline=False,
    )
    return embed


def build_close_dm_embed(
    *,
    guild_name: str,
    ticket_name: str,
    type_label: str | None,
    closed_by: str,
    reason: str,
    opened_at: datetime | None,
    closed_at: datetime,
    feedback_channel_id: int | None = None,
) -> discord.Embed:
    """DM sent to the opener when their ticket is closed."""
    embed = discord.Embed(
        title="Ticket Closed",
        description="Your ticket has been closed. Details below:",
        color=CLOSED_COLOR,
    )
    embed.add_field(name="Server", value=guild_name, inline=True)
    embed.add_field(name="Ticket", value=ticket_name, inline=True)
    embed.add_field(name="Type", value=type_label or "Unknown", inline=True)
    embed.add_field(name="Closed By", value=closed_by or "Unknown", inline=True)
    embed.add_field(name="Reason", value=(reason or "No reason provided")[:1024], inline=False)
    embed.add_field(name="Opened", value=_stamp(opened_at), inline=True)
    embed.add_field(name="Closed", value=_stamp(closed_at), inline=True)

    steps = [
        "• If you still need help, open a new ticket from the ticket panel.",
        "• Keep your DMs open so you don't miss updates.",
    ]
    if feedback_channel_id:
        steps.insert(1, f"• If this was resolved, please consider leaving a vouch in <#{feedback_channel_id}>.")
    embed.add_field(name="Next Steps", value="\n".join(steps), inline=False)
    embed.set_footer(text="DonutDemand Support")
    return embed


# ---------------------------------------------------------------------------
# Giveaways
# ---------------------------------------------------------------------------
def build_giveaway_embed(
    *,
    prize: str,
    host_id: int,
    ends_at: datetime,
    entry_count: int,
    winner_count: int,
    min_invites: int,
    ended: bool,
    message_id: int | None,
) -> discord.Embed:
    end_unix = int(ends_at.timestamp())
    lines = [
        f"Ends: <t:{end_unix}:R> (<t:{end_unix}:F>)",
        f"Hosted by: <@{host_id}>",
        f"Entries: **{entry_count}**",
        f"Winners: **{winner_count}**",
    ]
    if min_invites > 0:
        lines.append(f"Min invites to join: **{min_invites}**")
    if ended:
        lines.append("**STATUS: ENDED**")

    embed = discord.Embed(
        title=f"\U0001f381 GIVEAWAY: {prize}"[:256],
        description="\n".join(lines),
        color=GIVEAWAY_COLOR,
    )
    embed.set_footer(text=f"Giveaway Message ID: {message_id or 'pending'}")
    return embed


def build_giveaway_view(message_id: int | None, *, ended: bool) -> discord.ui.View:
    """Join / Leave toggle; disabled once the giveaway has ended."""
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        custom_id=f"{GIVEAWAY_JOIN_PREFIX}{message_id or 'pending'}",
        label="Giveaway Ended" if ended else "Join / Leave",
        style=discord.ButtonStyle.success,
        emoji="\U0001f38a",
        disabled=ended or message_id is None,
    ))
    return view


def mention_list(user_ids: list[int]) -> str:
    return ", ".join(f"<@{uid}>" for uid in user_ids)


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------
def build_reward_panel_view() -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        custom_id=REWARD_CLAIM_ID,
        label="Claim Rewards",
        style=discord.ButtonStyle.success,
        emoji="\U0001f381",
    ))
    return view


def build_claim_modal() -> discord.ui.Modal:
    modal = discord.ui.Modal(title="Claim Invite Rewards", custom_id=REWARD_MODAL_ID, timeout=None)
    modal.add_item(discord.ui.TextInput(
        label="What is your Minecraft username?",
        custom_id=CLAIM_FIELD_USERNAME,
        style=discord.TextStyle.short,
        max_length=32,
        required=True,
    ))
    modal.add_item(discord.ui.TextInput(
        label="Anything we should know?",
        custom_id=CLAIM_FIELD_NOTE,
        style=discord.TextStyle.paragraph,
        max_length=500,
        required=False,
    ))
    return modal


def build_claim_embed(
    *,
    user_id: int,
    invites: int,
    amount: int,
    username: str,
    note: str | None = None,
) -> discord.Embed:
    """Confirmation posted to the claims channel after a successful payout."""
    embed = discord.Embed(
        title="\U0001f4b0 Reward Claimed",
        description=f"<@{user_id}> claimed their invite reward.",
        color=CLAIM_COLOR,
    )
    embed.add_field(name="Invites", value=str(invites), inline=True)
    embed.add_field(name="Payout", value=f"${amount}", inline=True)
    embed.add_field(name="Minecraft Username", value=username[:64] or "N/A", inline=True)
    if note:
        embed.add_field(name="Note", value=note[:1024], inline=False)
    return embed


# ---------------------------------------------------------------------------
# Admin announcements
# ---------------------------------------------------------------------------
def build_custom_embed(
    *,
    title: str | None = None,
    description: str | None = None,
    color: str | None = None,
    url: str | None = None,
    thumbnail: str | None = None,
    image: str | None = None,
) -> discord.Embed:
    """Free-form embed for ``/embed``.

    An unparseable *color* falls back to the panel colour.

    Raises
    ------
    ValidationError
        If title, description, thumbnail and image are all empty.
    """
    if not (title or description or thumbnail or image):
        raise ValidationError("Provide at least a title, description, image or thumbnail.")

    parsed = parse_hex_color(color)
    embed = discord.Embed(
        title=title[:256] if title else None,
        description=description[:4096] if description else None,
        url=url or None,
        color=parsed if parsed is not None else PANEL_COLOR,
    )
    if thumbnail:
        embed.set_thumbnail(url=thumbnail)
    if image:
        embed.set_image(url=image)
    return embed
