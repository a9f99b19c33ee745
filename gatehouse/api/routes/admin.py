"""
gatehouse.api.routes.admin — Review surface (JWT‑protected, admins only)
=========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from gatehouse.api.deps import (
    get_audio_store,
    get_config,
    get_current_admin,
    get_engine,
    get_optional_discord,
    http_error,
)
from gatehouse.config import GatehouseConfig
from gatehouse.database.engine import run_db
from gatehouse.services import application_service, catalog_service, notification_service
from gatehouse.services.application_service import Reviewer
from gatehouse.services.audio_store import AudioStore
from gatehouse.services.discord_service import DiscordClient
from gatehouse.services.errors import GatehouseError

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ReviewDecision(BaseModel):
    status: str
    denial_reason: str | None = None
    revision_reason: str | None = None
    revision_question_ids: list[int] = Field(default_factory=list)


class QuestionCreate(BaseModel):
    text: str
    type: str
    required: bool = True


class QuestionUpdate(BaseModel):
    text: str
    type: str
    required: bool
    order: int


class QuestionReorder(BaseModel):
    question_ids: list[int]


def _reviewer(admin: dict) -> Reviewer:
    return Reviewer(id=int(admin["sub"]), name=admin.get("username") or "Unknown")


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------
@router.get("/applications")
def list_applications(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"applications": application_service.list_applications(engine)}


@router.put("/applications/{application_id}")
async def review_application(
    application_id: int,
    body: ReviewDecision,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    cfg: GatehouseConfig = Depends(get_config),
    discord: DiscordClient | None = Depends(get_optional_discord),
):
    """Approve, deny, or request a revision, then notify the applicant.

    The decision commits even when the bot is unconfigured; the skipped
    Discord actions show up as failed ``side_effects``.
    """
    try:
        application = await run_db(
            application_service.review,
            engine,
            application_id,
            _reviewer(admin),
            status=body.status,
            denial_reason=body.denial_reason,
            revision_reason=body.revision_reason,
            revision_question_ids=body.revision_question_ids,
        )
    except GatehouseError as exc:
        raise http_error(exc) from exc

    report = await notification_service.apply_decision_effects(discord, cfg, application)
    return {"application": application, "side_effects": report.to_list()}


@router.delete("/applications/{application_id}")
def delete_application(
    application_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    store: AudioStore = Depends(get_audio_store),
):
    """Reset: remove the application so the applicant can apply again."""
    try:
        orphaned = application_service.delete_application(engine, application_id)
    except GatehouseError as exc:
        raise http_error(exc) from exc
    store.discard(orphaned)
    return {"success": True}


# ---------------------------------------------------------------------------
# Question catalog
# ---------------------------------------------------------------------------
@router.post("/questions", status_code=201)
def create_question(
    body: QuestionCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        question = catalog_service.create_question(
            engine, text=body.text, qtype=body.type, required=body.required
        )
    except GatehouseError as exc:
        raise http_error(exc) from exc
    return {"question": catalog_service.question_to_dict(question)}


# Registered before /questions/{question_id} so "reorder" isn't taken as an id
@router.put("/questions/reorder")
def reorder_questions(
    body: QuestionReorder,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    if not body.question_ids:
        raise HTTPException(400, "question_ids must not be empty")
    try:
        catalog_service.reorder_questions(engine, body.question_ids)
    except GatehouseError as exc:
        raise http_error(exc) from exc
    return {"success": True}


@router.put("/questions/{question_id}")
def update_question(
    question_id: int,
    body: QuestionUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        question = catalog_service.update_question(
            engine,
            question_id,
            text=body.text,
            qtype=body.type,
            required=body.required,
            order=body.order,
        )
    except GatehouseError as exc:
        raise http_error(exc) from exc
    return {"question": catalog_service.question_to_dict(question)}


@router.delete("/questions/{question_id}")
def delete_question(
    question_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    store: AudioStore = Depends(get_audio_store),
):
    try:
        orphaned = catalog_service.delete_question(engine, question_id)
    except GatehouseError as exc:
        raise http_error(exc) from exc
    store.discard(orphaned)
    return {"success": True}
