"""
gatehouse.api.routes.cleanup — Retention sweep trigger
=======================================================

Called by an external scheduler with ``Authorization: Bearer
<CLEANUP_SECRET>``.  No user session is involved.
"""

from __future__ import annotations

import logging
import os
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status

from gatehouse.api.deps import get_audio_store, get_config, get_engine
from gatehouse.config import GatehouseConfig
from gatehouse.services import retention_service
from gatehouse.services.audio_store import AudioStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["cleanup"])


def require_cleanup_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Reject the call unless it carries the configured bearer secret."""
    secret = os.getenv("CLEANUP_SECRET", "")
    if not secret or not authorization:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    if not secrets.compare_digest(
        authorization.encode(), f"Bearer {secret}".encode()
    ):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


@router.post("/cleanup", dependencies=[Depends(require_cleanup_secret)])
def cleanup(
    engine=Depends(get_engine),
    store: AudioStore = Depends(get_audio_store),
    cfg: GatehouseConfig = Depends(get_config),
):
    """Remove audio answers older than the retention window."""
    summary = retention_service.run_audio_retention(
        engine, store, cfg.audio_retention_days
    )
    return {
        "success": True,
        "message": (
            f"Cleaned up {summary['deleted']} audio files, "
            f"{summary['failed']} failed"
        ),
        **summary,
    }
