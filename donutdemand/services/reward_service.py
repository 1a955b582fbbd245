"""
donutdemand.services.reward_service — Invite Reward Claims
==========================================================

Members with enough credited invites can cash them out:

1. :func:`RewardService.check_eligible` gates the claim form.
2. :func:`RewardService.claim` re-checks at submission, computes
   ``amount = invites × payout_per_invite`` and POSTs one JSON payload to
   the guild's payout webhook.
3. Only a 2xx response resets the claimant's ledger entry.  Anything
   else raises :class:`~donutdemand.errors.ExternalCallFailure` with the
   ledger untouched.  There is no automatic retry; the member may claim
   again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx

from donutdemand.constants import (
    DEFAULT_PAYOUT_PER_INVITE,
    PAYOUT_TIMEOUT_SECONDS,
    REWARD_INVITE_THRESHOLD,
)
from donutdemand.database.engine import run_db
from donutdemand.errors import ConsistencyViolation, ExternalCallFailure, ValidationError
from donutdemand.services import gate, ledger_service
from donutdemand.services.embeds import build_claim_embed
from donutdemand.services.gate import Actor
from donutdemand.services.locks import KeyedLocks
from donutdemand.services.settings_service import get_settings

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from donutdemand.services.platform import Platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Eligibility:
    ok: bool
    invites: int


@dataclass(frozen=True, slots=True)
class ClaimPayload:
    """What the member typed into the claim form."""

    username: str
    note: str | None = None


@dataclass(frozen=True, slots=True)
class ClaimResult:
    user_id: int
    invites: int
    amount: int
    status_code: int


class RewardService:
    """Eligibility check and at-most-once payout notification."""

    def __init__(
        self,
        engine: Engine,
        platform: Platform,
        *,
        payout_per_invite: int = DEFAULT_PAYOUT_PER_INVITE,
        threshold: int = REWARD_INVITE_THRESHOLD,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = PAYOUT_TIMEOUT_SECONDS,
    ) -> None:
        self.engine = engine
        self.platform = platform
        self.payout_per_invite = payout_per_invite
        self.threshold = threshold
        self.transport = transport
        self.timeout = timeout
        self.locks = KeyedLocks()

    async def check_eligible(self, guild_id: int, user_id: int) -> Eligibility:
        invites = await run_db(ledger_service.credit_for, self.engine, guild_id, user_id)
        return Eligibility(ok=invites >= self.threshold, invites=invites)

    def payout_for(self, invites: int) -> int:
        return invites * self.payout_per_invite

    async def claim(
        self,
        guild_id: int,
        user_id: int,
        payload: ClaimPayload,
        *,
        actor: Actor | None = None,
    ) -> ClaimResult:
        """Submit a claim; the ledger is reset only after a 2xx webhook reply.

        Raises
        ------
        AuthorizationError
            The guild was suspended, even if the form was opened before.
        ValidationError
            No payout webhook is configured, or the username is blank.
        ConsistencyViolation
            The member fell below the threshold since opening the form.
        ExternalCallFailure
            The webhook call failed or returned a non-2xx status.
        """
        if not payload.username.strip():
            raise ValidationError("Please enter your Minecraft username.")

        settings = await run_db(get_settings, self.engine, guild_id)
        gate.require_active_guild(actor or Actor(user_id=user_id), settings)
        if not settings.webhook_url:
            raise ValidationError("Reward payouts are not configured on this server.")

        async with self.locks(user_id):
            eligibility = await self.check_eligible(guild_id, user_id)
            if not eligibility.ok:
                raise ConsistencyViolation(
                    f"You need **{self.threshold}** invites to claim. "
                    f"You have **{eligibility.invites}**."
                )

            amount = self.payout_for(eligibility.invites)
            body = {
                "content": (
                    f"Reward claim: <@{user_id}> ({payload.username}) "
                    f"{eligibility.invites} invites → ${amount}"
                ),
                "guild_id": str(guild_id),
                "user_id": str(user_id),
                "username": payload.username.strip(),
                "note": payload.note,
                "invites": eligibility.invites,
                "amount": amount,
                "claimed_at": datetime.now(UTC).isoformat(),
            }
            status = await self._post(settings.webhook_url, body)
            await run_db(ledger_service.reset, self.engine, user_id)

        logger.info(
            "Reward claimed by %d: %d invites, payout %d",
            user_id, eligibility.invites, amount,
        )
        result = ClaimResult(
            user_id=user_id, invites=eligibility.invites, amount=amount, status_code=status,
        )
        await self._announce(settings.claims_channel_id, result, payload)
        return result

    async def _post(self, url: str, body: dict) -> int:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("Payout webhook unreachable: %s", exc)
            raise ExternalCallFailure("Couldn't reach the payout service. Please try again.") from exc

        if not resp.is_success:
            logger.warning("Payout webhook returned %d", resp.status_code)
            raise ExternalCallFailure(
                f"The payout service rejected the claim (HTTP {resp.status_code}). "
                "Your invites were not reset."
            )
        return resp.status_code

    async def _announce(self, channel_id: int | None, result: ClaimResult, payload: ClaimPayload) -> None:
        if not channel_id:
            return
        embed = build_claim_embed(
            user_id=result.user_id,
            invites=result.invites,
            amount=result.amount,
            username=payload.username,
            note=payload.note,
        )
        try:
            await self.platform.send_message(channel_id, embed=embed)
        except ExternalCallFailure:
            logger.warning("Claim confirmation post failed", exc_info=True)
