"""
gatehouse.services.notification_service — Decision side effects
================================================================

Runs the Discord half of a review decision *after* the status change has
committed:

    approved  → grant whitelist role, "approved" DM
    denied    → revoke whitelist role, "denied" DM (with reason)
    revision  → "revision requested" DM listing the flagged questions

Each action is attempted once and independently.  A failure is logged and
recorded in the returned :class:`SideEffectReport`; it never undoes the
transition or fails the request.  Discord role state can therefore drift
from the application record and is not reconciled automatically.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field

from gatehouse.config import GatehouseConfig
from gatehouse.database.models import ApplicationStatus
from gatehouse.services.discord_service import DiscordClient
from gatehouse.services.embeds import (
    build_approved_embed,
    build_denied_embed,
    build_revision_embed,
)

logger = logging.getLogger(__name__)

BOT_NOT_CONFIGURED = "Discord bot is not configured"

# Actions attempted per decision, in order
DECISION_ACTIONS: dict[str, tuple[str, ...]] = {
    ApplicationStatus.APPROVED.value: ("grant_role", "send_dm"),
    ApplicationStatus.DENIED.value: ("revoke_role", "send_dm"),
    ApplicationStatus.REVISION.value: ("send_dm",),
}


@dataclass(slots=True)
class SideEffectOutcome:
    action: str
    ok: bool
    error: str | None = None

    def to_dict(self) -> dict:
        return {"action": self.action, "ok": self.ok, "error": self.error}


@dataclass(slots=True)
class SideEffectReport:
    """Outcome of every best-effort action attempted for one decision."""
    outcomes: list[SideEffectOutcome] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    def to_list(self) -> list[dict]:
        return [o.to_dict() for o in self.outcomes]

    async def attempt(self, action: str, call: Awaitable[None]) -> None:
        """Await *call*, recording success or the caught failure."""
        try:
            await call
        except Exception as exc:
            logger.exception("Side effect %s failed", action)
            self.outcomes.append(SideEffectOutcome(action, False, str(exc)))
        else:
            self.outcomes.append(SideEffectOutcome(action, True))


async def apply_decision_effects(
    discord: DiscordClient | None,
    cfg: GatehouseConfig,
    application: dict,
) -> SideEffectReport:
    """Fire the role change and DM matching ``application["status"]``.

    *application* is the dict returned by the committed transition.  With
    no *discord* client every action is recorded as failed.
    """
    report = SideEffectReport()
    user_id = int(application["applicant_id"])
    status = application["status"]

    if discord is None:
        report.outcomes.extend(
            SideEffectOutcome(action, False, BOT_NOT_CONFIGURED)
            for action in DECISION_ACTIONS.get(status, ())
        )
    elif status == ApplicationStatus.APPROVED.value:
        await report.attempt("grant_role", discord.grant_whitelist_role(user_id))
        await report.attempt(
            "send_dm",
            discord.send_embed_dm(user_id, build_approved_embed(cfg.community_name)),
        )
    elif status == ApplicationStatus.DENIED.value:
        await report.attempt("revoke_role", discord.revoke_whitelist_role(user_id))
        await report.attempt(
            "send_dm",
            discord.send_embed_dm(
                user_id,
                build_denied_embed(cfg.community_name, application.get("denial_reason")),
            ),
        )
    elif status == ApplicationStatus.REVISION.value:
        texts = [q["text"] for q in application.get("revision_questions", [])]
        await report.attempt(
            "send_dm",
            discord.send_embed_dm(
                user_id,
                build_revision_embed(
                    cfg.community_name, texts, application.get("revision_reason")
                ),
            ),
        )

    if not report.all_ok:
        logger.warning(
            "Application %s is %s but some Discord actions failed: %s",
            application["id"], status,
            [o.action for o in report.outcomes if not o.ok],
        )
    return report
