"""
gatehouse.services.retention_service — Audio Answer Retention
==============================================================

Voice answers are only needed while an application is being reviewed.
The sweep finds answers whose audio was uploaded before the retention
window (7 days by default), deletes the stored object, and nulls the URL.
Text answers and the application itself are left alone.

Each answer is handled in its own transaction.  A failure on one item is
logged and counted; the sweep carries on with the rest.  Triggered by
``POST /api/cleanup`` (bearer secret), typically from an external cron.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, func, select, update

from gatehouse.constants import DEFAULT_AUDIO_RETENTION_DAYS
from gatehouse.database.engine import get_session
from gatehouse.database.models import Answer
from gatehouse.services.audio_store import AudioStore

logger = logging.getLogger(__name__)


def find_expired_audio(
    engine: Engine, cutoff: datetime
) -> list[tuple[int, str]]:
    """Return ``(answer_id, audio_url)`` for audio uploaded before *cutoff*.

    Age runs from ``audio_uploaded_at`` so audio replaced during a revision
    gets a fresh window; rows without it fall back to ``created_at``.
    """
    uploaded_at = func.coalesce(Answer.audio_uploaded_at, Answer.created_at)
    with get_session(engine) as session:
        rows = session.execute(
            select(Answer.id, Answer.audio_url)
            .where(Answer.audio_url.is_not(None), uploaded_at < cutoff)
            .order_by(Answer.id)
        ).all()
    return [(row.id, row.audio_url) for row in rows]


def run_audio_retention(
    engine: Engine,
    store: AudioStore,
    retention_days: int = DEFAULT_AUDIO_RETENTION_DAYS,
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    """Delete audio older than ``retention_days`` and clear its URL.

    Returns a summary dict: ``{"deleted": N, "failed": M, "total": N + M}``.
    """
    cutoff = (now or datetime.now(UTC)) - timedelta(days=retention_days)
    expired = find_expired_audio(engine, cutoff)

    deleted = 0
    failed = 0
    for answer_id, audio_url in expired:
        try:
            store.delete(audio_url)
            with get_session(engine) as session:
                session.execute(
                    update(Answer)
                    .where(Answer.id == answer_id)
                    .values(audio_url=None, audio_uploaded_at=None)
                )
            deleted += 1
        except Exception:
            logger.exception("Retention: failed to remove audio for answer %d", answer_id)
            failed += 1

    logger.info(
        "Audio retention complete — %d removed, %d failed "
        "(retention_days=%d, cutoff=%s)",
        deleted, failed, retention_days, cutoff.isoformat(),
    )
    return {"deleted": deleted, "failed": failed, "total": len(expired)}
