"""
gatehouse.api.routes.apply — Applicant endpoints (JWT‑protected)
=================================================================

Submissions are ``multipart/form-data``:

* ``answers`` — JSON object mapping question id → text answer
* ``audio_<question id>`` — one file part per recorded/uploaded answer
"""

from __future__ import annotations

import json
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.datastructures import UploadFile

from gatehouse.api.deps import (
    get_audio_store,
    get_current_user,
    get_discord,
    get_engine,
    http_error,
)
from gatehouse.constants import ANSWERS_FIELD, AUDIO_FIELD_PREFIX
from gatehouse.services import application_service
from gatehouse.services.application_service import Applicant, AudioUpload
from gatehouse.services.audio_store import AudioStore, AudioStoreError
from gatehouse.services.discord_service import DiscordAPIError, DiscordClient
from gatehouse.services.errors import GatehouseError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["apply"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
async def _read_submission(
    request: Request,
) -> tuple[dict[int, str], dict[int, AudioUpload]]:
    """Split a multipart submission into text answers and audio parts."""
    form = await request.form()

    raw = form.get(ANSWERS_FIELD) or "{}"
    if not isinstance(raw, str):
        raise HTTPException(400, f"'{ANSWERS_FIELD}' must be a JSON string")
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(400, f"'{ANSWERS_FIELD}' is not valid JSON")
    try:
        text_answers = application_service.parse_text_answers(decoded)
    except GatehouseError as exc:
        raise http_error(exc) from exc

    audio: dict[int, AudioUpload] = {}
    for key, value in form.multi_items():
        if not key.startswith(AUDIO_FIELD_PREFIX) or not isinstance(value, UploadFile):
            continue
        try:
            qid = int(key[len(AUDIO_FIELD_PREFIX):])
        except ValueError:
            continue
        content = await value.read()
        if content:
            audio[qid] = AudioUpload(value.filename, content, value.content_type)

    return text_answers, audio


def _applicant(user: dict) -> Applicant:
    return Applicant(
        id=int(user["sub"]),
        name=user.get("username") or "Unknown",
        avatar=user.get("avatar"),
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("/apply", status_code=201)
async def submit_application(
    request: Request,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    store: AudioStore = Depends(get_audio_store),
    discord: DiscordClient = Depends(get_discord),
):
    """Submit a new application (none → pending)."""
    text_answers, audio = await _read_submission(request)
    try:
        application = await application_service.submit(
            engine, store, discord, _applicant(user), text_answers, audio
        )
    except GatehouseError as exc:
        raise http_error(exc) from exc
    except (DiscordAPIError, httpx.HTTPError) as exc:
        logger.exception("Guild membership check failed for %s", user["sub"])
        raise HTTPException(502, "Could not verify guild membership") from exc
    except AudioStoreError as exc:
        logger.exception("Audio upload failed for %s", user["sub"])
        raise HTTPException(500, "Failed to submit application") from exc
    return {"application": application}


@router.post("/apply/revision")
async def submit_revision(
    request: Request,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    store: AudioStore = Depends(get_audio_store),
):
    """Re-answer the flagged questions (revision → pending)."""
    text_answers, audio = await _read_submission(request)
    try:
        application = await application_service.resubmit_revision(
            engine, store, int(user["sub"]), text_answers, audio
        )
    except GatehouseError as exc:
        raise http_error(exc) from exc
    except AudioStoreError as exc:
        logger.exception("Audio upload failed for %s", user["sub"])
        raise HTTPException(500, "Failed to submit revision") from exc
    return {"application": application}


@router.get("/my-application")
def my_application(
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    """The caller's newest application of any status, or ``null``."""
    return {
        "application": application_service.get_latest_for_applicant(
            engine, int(user["sub"])
        )
    }
