"""
gatehouse.api.routes.public — Unauthenticated read endpoints
=============================================================
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException

from gatehouse.api.deps import get_discord, get_engine
from gatehouse.services import catalog_service
from gatehouse.services.discord_service import DiscordAPIError, DiscordClient

logger = logging.getLogger(__name__)
router = APIRouter(tags=["public"])


@router.get("/questions")
def list_questions(engine=Depends(get_engine)):
    """The question catalog in display order."""
    return {
        "questions": [
            catalog_service.question_to_dict(q)
            for q in catalog_service.list_questions(engine)
        ]
    }


@router.get("/check-guild")
async def check_guild(
    user_id: int | None = None,
    discord: DiscordClient = Depends(get_discord),
):
    """Whether *user_id* is currently a member of the guild."""
    if user_id is None:
        raise HTTPException(400, "User ID required")
    try:
        in_guild = await discord.is_member(user_id)
    except (DiscordAPIError, httpx.HTTPError):
        logger.exception("Guild membership check failed for %s", user_id)
        in_guild = False
    return {"in_guild": in_guild}
