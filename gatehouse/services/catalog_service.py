"""
gatehouse.services.catalog_service — Question Catalog
======================================================

CRUD and reordering for the ordered question list every application is
built from.  ``order`` is dense and admin-controlled: new questions land
at the end, and a reorder reassigns ``0..n-1`` in the given sequence.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from gatehouse.database.models import Answer, Question, QuestionType
from gatehouse.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def question_to_dict(q: Question) -> dict:
    return {
        "id": q.id,
        "text": q.text,
        "type": q.type,
        "required": q.required,
        "order": q.order,
    }


def _validate(text: str, qtype: str) -> tuple[str, str]:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Question text is required")
    try:
        qtype = QuestionType(qtype).value
    except ValueError:
        allowed = ", ".join(t.value for t in QuestionType)
        raise ValidationError(
            f"Invalid question type {qtype!r}. Allowed: {allowed}"
        ) from None
    return text, qtype


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_questions(engine: Engine) -> list[Question]:
    """Return the catalog in display order (``order`` asc, then id)."""
    with Session(engine, expire_on_commit=False) as session:
        questions = session.scalars(
            select(Question).order_by(Question.order.asc(), Question.id.asc())
        ).all()
        session.expunge_all()
        return list(questions)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def create_question(
    engine: Engine,
    *,
    text: str,
    qtype: str,
    required: bool = True,
) -> Question:
    """Append a question at ``max(order) + 1``."""
    text, qtype = _validate(text, qtype)
    with Session(engine, expire_on_commit=False) as session:
        max_order = session.scalar(select(func.max(Question.order)))
        question = Question(
            text=text,
            type=qtype,
            required=required,
            order=(max_order if max_order is not None else -1) + 1,
        )
        session.add(question)
        session.commit()
        session.refresh(question)
        session.expunge(question)

    logger.info("Question %d created at position %d", question.id, question.order)
    return question


def update_question(
    engine: Engine,
    question_id: int,
    *,
    text: str,
    qtype: str,
    required: bool,
    order: int,
) -> Question:
    """Overwrite every editable field of a question."""
    text, qtype = _validate(text, qtype)
    with Session(engine, expire_on_commit=False) as session:
        question = session.get(Question, question_id)
        if question is None:
            raise NotFoundError("Question not found")
        question.text = text
        question.type = qtype
        question.required = required
        question.order = order
        session.commit()
        session.refresh(question)
        session.expunge(question)

    logger.info("Question %d updated", question_id)
    return question


def delete_question(engine: Engine, question_id: int) -> list[str]:
    """Delete a question and every answer given to it.

    Returns the audio URLs those answers referenced so the caller can
    release them from the audio store.
    """
    with Session(engine) as session:
        question = session.get(Question, question_id)
        if question is None:
            raise NotFoundError("Question not found")
        orphaned = list(session.scalars(
            select(Answer.audio_url).where(
                Answer.question_id == question_id,
                Answer.audio_url.is_not(None),
            )
        ).all())
        session.delete(question)
        session.commit()

    logger.info(
        "Question %d deleted (%d audio answers orphaned)",
        question_id, len(orphaned),
    )
    return orphaned


def reorder_questions(engine: Engine, question_ids: list[int]) -> None:
    """Set ``order`` to each id's index in *question_ids*.

    *question_ids* must list the whole catalog exactly once so positions
    stay ``0..n-1``.  All rows are updated in one transaction; an unknown
    or omitted id aborts the whole reorder.
    """
    if len(set(question_ids)) != len(question_ids):
        raise ValidationError("question_ids contains duplicates")

    with Session(engine) as session:
        rows = {q.id: q for q in session.scalars(select(Question)).all()}
        unknown = [qid for qid in question_ids if qid not in rows]
        if unknown:
            raise NotFoundError(
                "Unknown question ids: " + ", ".join(str(u) for u in unknown)
            )
        omitted = sorted(set(rows) - set(question_ids))
        if omitted:
            raise ValidationError(
                "question_ids must list every question; missing: "
                + ", ".join(str(o) for o in omitted)
            )
        for index, qid in enumerate(question_ids):
            rows[qid].order = index
        session.commit()

    logger.info("Reordered %d questions", len(question_ids))
