"""
donutdemand.engine.panel — Ticket Panel Configuration Schema
============================================================

Admins paste the whole ticket panel as one JSON string (``/panel set``),
which keeps the slash command under Discord's option caps.  The schema is
enforced with pydantic; any violation surfaces as a
:class:`~donutdemand.errors.ValidationError` with a readable message.
"""

from __future__ import annotations

import json
import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from donutdemand.constants import MAX_PANEL_JSON_LENGTH, MAX_TICKET_TYPES
from donutdemand.errors import ValidationError

_HEX_COLOR = re.compile(r"^(#|0x)?[0-9a-fA-F]{6}$")


def parse_hex_color(value: str | None) -> int | None:
    """``#2b2d31`` / ``0x2b2d31`` / ``2b2d31`` → int, else ``None``."""
    if not value or not _HEX_COLOR.match(value.strip()):
        return None
    s = value.strip().removeprefix("#").removeprefix("0x")
    return int(s, 16)


class ButtonConfig(BaseModel):
    label: str = Field(min_length=1, max_length=80)
    style: Literal["Primary", "Secondary", "Success", "Danger"] = "Primary"
    emoji: str | None = Field(default=None, max_length=40)


class TicketTypeConfig(BaseModel):
    """One ticket type (one button on the panel)."""

    id: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_\-]+$")
    label: str = Field(min_length=1, max_length=80)
    category: str = Field(min_length=1, max_length=100)
    key: str = Field(min_length=1, max_length=60)
    button: ButtonConfig
    min_invites: int = Field(default=0, ge=0)


class EmbedConfig(BaseModel):
    title: str = Field(min_length=1, max_length=256)
    description: str = Field(min_length=1, max_length=4000)
    color: str | None = None

    @field_validator("color")
    @classmethod
    def _check_color(cls, v: str | None) -> str | None:
        if v and parse_hex_color(v) is None:
            raise ValueError("embed.color must be a hex like #2b2d31.")
        return v


class ModalConfig(BaseModel):
    title: str = Field(default="Ticket Info", min_length=1, max_length=45)
    mc_label: str = Field(
        default="What is your Minecraft username?", min_length=1, max_length=45,
        alias="mcLabel",
    )
    need_label: str = Field(
        default="What do you need?", min_length=1, max_length=45, alias="needLabel",
    )

    model_config = {"populate_by_name": True}


class PanelSettings(BaseModel):
    """Complete ticket panel: embed, intake modal, 1–4 ticket types."""

    embed: EmbedConfig
    modal: ModalConfig = Field(default_factory=ModalConfig)
    tickets: list[TicketTypeConfig] = Field(min_length=1, max_length=MAX_TICKET_TYPES)

    @model_validator(mode="after")
    def _unique_ticket_ids(self) -> PanelSettings:
        seen: set[str] = set()
        for t in self.tickets:
            if t.id in seen:
                raise ValueError(f"Duplicate ticket id: {t.id}")
            seen.add(t.id)
        return self

    def ticket_type(self, type_id: str | None) -> TicketTypeConfig | None:
        return next((t for t in self.tickets if t.id == type_id), None)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


DEFAULT_PANEL: dict[str, Any] = {
    "embed": {
        "title": "Tickets",
        "description": (
            "Open the right ticket type below.\n\n"
            "\U0001f198 Help & Support\n\U0001f4b0 Claim Order\n"
            "\U0001f4b8 Sell To Us\n\U0001f381 Rewards"
        ),
        "color": "#2b2d31",
    },
    "modal": {
        "title": "Ticket Info",
        "mcLabel": "What is your Minecraft username?",
        "needLabel": "What do you need?",
    },
    "tickets": [
        {
            "id": "ticket_support", "label": "Help & Support",
            "category": "Help & Support", "key": "help-support",
            "button": {"label": "Help & Support", "style": "Primary", "emoji": "\U0001f198"},
        },
        {
            "id": "ticket_claim", "label": "Claim Order",
            "category": "Claim Order", "key": "claim-order",
            "button": {"label": "Claim Order", "style": "Success", "emoji": "\U0001f4b0"},
        },
        {
            "id": "ticket_sell", "label": "Sell To Us",
            "category": "Sell to Us", "key": "sell-to-us",
            "button": {"label": "Sell To Us", "style": "Secondary", "emoji": "\U0001f4b8"},
        },
        {
            "id": "ticket_rewards", "label": "Rewards",
            "category": "Rewards", "key": "rewards",
            "button": {"label": "Rewards", "style": "Danger", "emoji": "\U0001f381"},
            "min_invites": 5,
        },
    ],
}


def _first_error(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    where = ".".join(str(p) for p in err.get("loc", ()))
    msg = err.get("msg", "invalid value").removeprefix("Value error, ")
    return f"{where}: {msg}" if where else msg


def validate_panel(data: Any) -> PanelSettings:
    """Validate an already-decoded panel dict."""
    if not isinstance(data, dict):
        raise ValidationError("Config must be a JSON object.")
    try:
        return PanelSettings.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


def parse_panel_json(raw: str) -> PanelSettings:
    """Decode and validate the raw ``/panel set`` argument."""
    if len(raw) > MAX_PANEL_JSON_LENGTH:
        raise ValidationError(
            f"JSON too long. Keep it under ~{MAX_PANEL_JSON_LENGTH} characters."
        )
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("Invalid JSON. Make sure it's valid JSON format.") from exc
    return validate_panel(data)


def default_panel() -> PanelSettings:
    return PanelSettings.model_validate(DEFAULT_PANEL)
