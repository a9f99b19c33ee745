"""
gatehouse.services.application_service — Application Lifecycle
===============================================================

The state machine behind a whitelist application::

    (none) ──Submit──────────▶ pending
    pending ──Approve────────▶ approved
    pending ──Deny───────────▶ denied
    pending ──RequestRevision▶ revision
    revision ──Approve───────▶ approved
    revision ──Deny──────────▶ denied
    revision ──Resubmit──────▶ pending
    any ──Delete─────────────▶ (none)

Every other (status, event) pair raises :class:`InvalidTransitionError`.

The synchronous functions here own one DB transaction each and return
plain dicts.  The two ``async`` entry points (:func:`submit` and
:func:`resubmit_revision`) wrap them with audio uploads and the guild
membership check.  Discord side effects of review decisions live in
:mod:`gatehouse.services.notification_service` and run only after the
transition has committed.

The "one pending application per applicant" guard is a read-then-write
check without a lock.  Two simultaneous submissions from the same account
can both pass it; admins resolve the duplicate with Delete.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session, selectinload

from gatehouse.database.engine import run_db
from gatehouse.database.models import (
    Answer,
    Application,
    ApplicationStatus,
    Question,
)
from gatehouse.services import catalog_service
from gatehouse.services.audio_store import AudioStore
from gatehouse.services.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    NotMemberError,
    NotOwnerError,
    ValidationError,
)

if TYPE_CHECKING:
    from gatehouse.services.discord_service import DiscordClient

logger = logging.getLogger(__name__)

REVIEWABLE = frozenset({ApplicationStatus.PENDING.value, ApplicationStatus.REVISION.value})


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Applicant:
    """The signed-in member submitting an application."""
    id: int
    name: str
    avatar: str | None = None


@dataclass(frozen=True, slots=True)
class Reviewer:
    """The admin making a review decision."""
    id: int
    name: str


@dataclass(frozen=True, slots=True)
class AudioUpload:
    """A raw audio part from a multipart submission."""
    filename: str | None
    content: bytes
    content_type: str | None = None


@dataclass(slots=True)
class AnswerDraft:
    """Content captured for one question before it is persisted."""
    text: str | None = None
    audio_url: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.audio_url


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _answer_dict(a: Answer) -> dict:
    return {
        "id": a.id,
        "question_id": a.question_id,
        "question": catalog_service.question_to_dict(a.question) if a.question else None,
        "text_answer": a.text_answer,
        "audio_url": a.audio_url,
        "created_at": _iso(a.created_at),
    }


def application_to_dict(
    session: Session, app: Application, *, include_answers: bool = True
) -> dict:
    """Serialize an application; must be called while *session* is open."""
    flagged = []
    if app.revision_question_ids:
        flagged = [
            {"id": q.id, "text": q.text}
            for q in session.scalars(
                select(Question)
                .where(Question.id.in_(app.revision_question_ids))
                .order_by(Question.order.asc(), Question.id.asc())
            ).all()
        ]

    data: dict[str, Any] = {
        "id": app.id,
        "applicant_id": str(app.applicant_id),
        "applicant_name": app.applicant_name,
        "applicant_avatar": app.applicant_avatar,
        "status": app.status,
        "denial_reason": app.denial_reason,
        "revision_reason": app.revision_reason,
        "revision_question_ids": list(app.revision_question_ids or []),
        "revised_question_ids": list(app.revised_question_ids or []),
        "revision_questions": flagged,
        "reviewer_name": app.reviewer_name,
        "reviewer_id": str(app.reviewer_id) if app.reviewer_id else None,
        "reviewed_at": _iso(app.reviewed_at),
        "created_at": _iso(app.created_at),
    }
    if include_answers:
        answers = sorted(
            app.answers,
            key=lambda a: (a.question.order, a.question_id) if a.question else (0, a.question_id),
        )
        data["answers"] = [_answer_dict(a) for a in answers]
    return data


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _in_catalog_order(session: Session, question_ids) -> list[int]:
    """Return the ids that still exist, sorted by catalog display order."""
    ids = set(question_ids)
    if not ids:
        return []
    return list(session.scalars(
        select(Question.id)
        .where(Question.id.in_(ids))
        .order_by(Question.order.asc(), Question.id.asc())
    ).all())


def _load(session: Session, application_id: int) -> Application:
    app = session.get(Application, application_id)
    if app is None:
        raise NotFoundError("Application not found")
    return app


def _require_status(app: Application, allowed, verb: str) -> None:
    if app.status not in allowed:
        raise InvalidTransitionError(
            f"Cannot {verb} an application that is {app.status}"
        )


def _stamp_reviewer(app: Application, reviewer: Reviewer) -> None:
    app.reviewer_id = reviewer.id
    app.reviewer_name = reviewer.name
    app.reviewed_at = datetime.now(UTC)


def _clean_text(value) -> str | None:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    text = text.strip()
    return text or None


def parse_text_answers(raw: dict) -> dict[int, str]:
    """Normalise a ``{question_id: text}`` map decoded from JSON.

    Keys that are not integers and blank values are dropped.  Numbers are
    kept as their text; objects, arrays and booleans are rejected.
    """
    if not isinstance(raw, dict):
        raise ValidationError("answers must be a JSON object")
    parsed: dict[int, str] = {}
    for key, value in raw.items():
        try:
            qid = int(key)
        except (TypeError, ValueError):
            continue
        if isinstance(value, (dict, list, bool)):
            raise ValidationError(f"Answer to question {qid} must be text")
        text = _clean_text(value)
        if text:
            parsed[qid] = text
    return parsed


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def has_pending(engine: Engine, applicant_id: int) -> bool:
    with Session(engine) as session:
        return session.scalar(
            select(Application.id).where(
                Application.applicant_id == applicant_id,
                Application.status == ApplicationStatus.PENDING.value,
            ).limit(1)
        ) is not None


def ensure_can_submit(engine: Engine, applicant_id: int) -> None:
    """Raise :class:`ConflictError` if the applicant already has a pending app."""
    if has_pending(engine, applicant_id):
        raise ConflictError("You already have a pending application")


def get_latest_for_applicant(engine: Engine, applicant_id: int) -> dict | None:
    """Return the applicant's newest application (any status), or ``None``."""
    with Session(engine) as session:
        app = session.scalar(
            select(Application)
            .where(Application.applicant_id == applicant_id)
            .options(selectinload(Application.answers).selectinload(Answer.question))
            .order_by(Application.created_at.desc(), Application.id.desc())
            .limit(1)
        )
        if app is None:
            return None
        return application_to_dict(session, app)


def list_applications(engine: Engine) -> list[dict]:
    """All applications with answers and question text, newest first."""
    with Session(engine) as session:
        apps = session.scalars(
            select(Application)
            .options(selectinload(Application.answers).selectinload(Answer.question))
            .order_by(Application.created_at.desc(), Application.id.desc())
        ).all()
        return [application_to_dict(session, a) for a in apps]


def get_revision_target(engine: Engine, applicant_id: int) -> tuple[int, list[int]]:
    """Return ``(application_id, flagged question ids)`` for a revision.

    Raises :class:`ConflictError` when nothing is awaiting revision.
    """
    with Session(engine) as session:
        app = session.scalar(
            select(Application)
            .where(
                Application.applicant_id == applicant_id,
                Application.status == ApplicationStatus.REVISION.value,
            )
            .order_by(Application.created_at.desc(), Application.id.desc())
            .limit(1)
        )
        if app is None:
            raise ConflictError("No revision requested")
        return app.id, list(app.revision_question_ids or [])


# ---------------------------------------------------------------------------
# Submit (none → pending)
# ---------------------------------------------------------------------------
def create_application(
    engine: Engine,
    applicant: Applicant,
    drafts: dict[int, AnswerDraft],
) -> dict:
    """Persist a new pending application against the current catalog.

    One :class:`Answer` row is written per question that has content;
    drafts for unknown question ids are ignored.
    """
    with Session(engine) as session:
        if session.scalar(
            select(Application.id).where(
                Application.applicant_id == applicant.id,
                Application.status == ApplicationStatus.PENDING.value,
            ).limit(1)
        ) is not None:
            raise ConflictError("You already have a pending application")

        questions = session.scalars(
            select(Question).order_by(Question.order.asc(), Question.id.asc())
        ).all()

        missing = [
            q.text for q in questions
            if q.required and drafts.get(q.id, AnswerDraft()).is_empty
        ]
        if missing:
            raise ValidationError("Please answer: " + "; ".join(missing))

        app = Application(
            applicant_id=applicant.id,
            applicant_name=applicant.name,
            applicant_avatar=applicant.avatar,
            status=ApplicationStatus.PENDING.value,
            revision_question_ids=[],
            revised_question_ids=[],
        )
        session.add(app)
        session.flush()

        for q in questions:
            draft = drafts.get(q.id)
            if draft is None or draft.is_empty:
                continue
            session.add(Answer(
                application_id=app.id,
                question_id=q.id,
                text_answer=draft.text,
                audio_url=draft.audio_url,
                audio_uploaded_at=datetime.now(UTC) if draft.audio_url else None,
            ))

        session.commit()
        app = session.scalar(
            select(Application)
            .where(Application.id == app.id)
            .options(selectinload(Application.answers).selectinload(Answer.question))
            .execution_options(populate_existing=True)
        )
        logger.info(
            "Application %d submitted by %s (%d answers)",
            app.id, applicant.id, len(app.answers),
        )
        return application_to_dict(session, app)


async def _upload_all(
    store: AudioStore,
    audio: dict[int, AudioUpload],
    question_ids,
    uploaded: list[str],
) -> dict[int, str]:
    """Upload audio for *question_ids*, appending each URL to *uploaded*."""
    urls: dict[int, str] = {}
    for qid in question_ids:
        part = audio.get(qid)
        if part is None or not part.content:
            continue
        try:
            url = await store.save(part.filename, part.content, part.content_type)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        uploaded.append(url)
        urls[qid] = url
    return urls


async def submit(
    engine: Engine,
    store: AudioStore,
    discord: DiscordClient,
    applicant: Applicant,
    text_answers: dict[int, str],
    audio: dict[int, AudioUpload],
) -> dict:
    """Capture a fresh application: guards, audio uploads, then rows.

    Audio is uploaded before anything is written.  If an upload or the
    final insert fails, audio already stored by this call is discarded and
    the error propagates.
    """
    await run_db(ensure_can_submit, engine, applicant.id)
    if not await discord.is_member(applicant.id):
        raise NotMemberError("You must join the server before applying")

    questions = await run_db(catalog_service.list_questions, engine)
    uploaded: list[str] = []
    try:
        urls = await _upload_all(store, audio, [q.id for q in questions], uploaded)
        drafts = {
            q.id: AnswerDraft(text=text_answers.get(q.id), audio_url=urls.get(q.id))
            for q in questions
        }
        return await run_db(create_application, engine, applicant, drafts)
    except Exception:
        if uploaded:
            await asyncio.to_thread(store.discard, uploaded)
        raise


# ---------------------------------------------------------------------------
# ResubmitRevision (revision → pending)
# ---------------------------------------------------------------------------
def apply_revision(
    engine: Engine,
    applicant_id: int,
    application_id: int,
    drafts: dict[int, AnswerDraft],
) -> tuple[dict, list[str]]:
    """Patch the flagged answers and send the application back to pending.

    Only drafts for ids in ``revision_question_ids`` are applied.  A flagged
    question with no existing answer gets a new one.  Returns the updated
    application and the audio URLs that were overwritten.
    """
    replaced: list[str] = []
    with Session(engine) as session:
        app = _load(session, application_id)
        if app.applicant_id != applicant_id:
            raise NotOwnerError("This application belongs to someone else")
        if app.status != ApplicationStatus.REVISION.value:
            raise ConflictError("No revision requested")

        flagged = list(app.revision_question_ids or [])
        existing = {a.question_id: a for a in app.answers}
        live_ids = set(_in_catalog_order(session, flagged))

        for qid in flagged:
            draft = drafts.get(qid)
            if draft is None or draft.is_empty:
                continue
            answer = existing.get(qid)
            if answer is None:
                if qid not in live_ids:
                    continue
                answer = Answer(application_id=app.id, question_id=qid)
                app.answers.append(answer)
            if draft.text:
                answer.text_answer = draft.text
            if draft.audio_url:
                if answer.audio_url:
                    replaced.append(answer.audio_url)
                answer.audio_url = draft.audio_url
                answer.audio_uploaded_at = datetime.now(UTC)

        app.revised_question_ids = _in_catalog_order(
            session, set(app.revised_question_ids or []) | set(flagged)
        )
        app.status = ApplicationStatus.PENDING.value
        app.revision_reason = None
        app.revision_question_ids = []
        app.reviewer_id = None
        app.reviewer_name = None
        app.reviewed_at = None
        session.commit()

        logger.info(
            "Application %d resubmitted after revision (%d questions flagged)",
            app.id, len(flagged),
        )
        return application_to_dict(session, app), replaced


async def resubmit_revision(
    engine: Engine,
    store: AudioStore,
    applicant_id: int,
    text_answers: dict[int, str],
    audio: dict[int, AudioUpload],
) -> dict:
    """Capture a revision: upload audio for flagged questions, then patch."""
    application_id, flagged = await run_db(get_revision_target, engine, applicant_id)

    uploaded: list[str] = []
    try:
        urls = await _upload_all(store, audio, flagged, uploaded)
        drafts = {
            qid: AnswerDraft(text=text_answers.get(qid), audio_url=urls.get(qid))
            for qid in flagged
        }
        result, replaced = await run_db(
            apply_revision, engine, applicant_id, application_id, drafts
        )
    except Exception:
        if uploaded:
            await asyncio.to_thread(store.discard, uploaded)
        raise

    if replaced:
        await asyncio.to_thread(store.discard, replaced)
    return result


# ---------------------------------------------------------------------------
# Review decisions (admin)
# ---------------------------------------------------------------------------
def approve(engine: Engine, application_id: int, reviewer: Reviewer) -> dict:
    """pending|revision → approved."""
    with Session(engine) as session:
        app = _load(session, application_id)
        _require_status(app, REVIEWABLE, "approve")
        app.status = ApplicationStatus.APPROVED.value
        app.denial_reason = None
        app.revision_reason = None
        app.revision_question_ids = []
        _stamp_reviewer(app, reviewer)
        session.commit()
        logger.info("Application %d approved by %s", app.id, reviewer.id)
        return application_to_dict(session, app)


def deny(
    engine: Engine,
    application_id: int,
    reviewer: Reviewer,
    reason: str | None = None,
) -> dict:
    """pending|revision → denied, with an optional reason."""
    with Session(engine) as session:
        app = _load(session, application_id)
        _require_status(app, REVIEWABLE, "deny")
        app.status = ApplicationStatus.DENIED.value
        app.denial_reason = _clean_text(reason)
        app.revision_reason = None
        app.revision_question_ids = []
        _stamp_reviewer(app, reviewer)
        session.commit()
        logger.info("Application %d denied by %s", app.id, reviewer.id)
        return application_to_dict(session, app)


def request_revision(
    engine: Engine,
    application_id: int,
    reviewer: Reviewer,
    question_ids: list[int],
    reason: str | None = None,
) -> dict:
    """pending → revision for a non-empty set of catalog questions."""
    if not question_ids:
        raise ValidationError("Select at least one question to revise")

    with Session(engine) as session:
        app = _load(session, application_id)
        _require_status(app, {ApplicationStatus.PENDING.value}, "request a revision for")

        ordered = _in_catalog_order(session, question_ids)
        unknown = sorted(set(question_ids) - set(ordered))
        if unknown:
            raise ValidationError(
                "Unknown question ids: " + ", ".join(str(u) for u in unknown)
            )

        app.status = ApplicationStatus.REVISION.value
        app.revision_reason = _clean_text(reason)
        app.revision_question_ids = ordered
        app.denial_reason = None
        _stamp_reviewer(app, reviewer)
        session.commit()
        logger.info(
            "Revision requested on application %d by %s (%d questions)",
            app.id, reviewer.id, len(ordered),
        )
        return application_to_dict(session, app)


def review(
    engine: Engine,
    application_id: int,
    reviewer: Reviewer,
    *,
    status: str,
    denial_reason: str | None = None,
    revision_reason: str | None = None,
    revision_question_ids: list[int] | None = None,
) -> dict:
    """Dispatch an admin decision by its target status."""
    if status == ApplicationStatus.APPROVED:
        return approve(engine, application_id, reviewer)
    if status == ApplicationStatus.DENIED:
        return deny(engine, application_id, reviewer, denial_reason)
    if status == ApplicationStatus.REVISION:
        return request_revision(
            engine,
            application_id,
            reviewer,
            list(revision_question_ids or []),
            revision_reason,
        )
    raise ValidationError(
        f"Invalid status {status!r}. Allowed: approved, denied, revision"
    )


def delete_application(engine: Engine, application_id: int) -> list[str]:
    """Hard-delete an application and its answers ("reset").

    Returns the audio URLs the deleted answers referenced.
    """
    with Session(engine) as session:
        app = _load(session, application_id)
        orphaned = [a.audio_url for a in app.answers if a.audio_url]
        session.delete(app)
        session.commit()

    logger.info("Application %d deleted", application_id)
    return orphaned
