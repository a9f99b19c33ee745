"""
gatehouse.database.seed — Default Question Catalog
===================================================

A starter catalog so a fresh deployment can accept applications before an
admin has written any questions.

Idempotent — only seeds when the ``questions`` table is empty.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from gatehouse.database.models import Question, QuestionType

logger = logging.getLogger(__name__)


DEFAULT_QUESTIONS: list[tuple[str, QuestionType, bool]] = [
    ("How old are you?", QuestionType.SHORT_TEXT, True),
    ("How did you find our server?", QuestionType.SHORT_TEXT, True),
    ("Tell us a bit about yourself and why you want to join.", QuestionType.LONG_TEXT, True),
    ("Record a short voice introduction.", QuestionType.AUDIO, False),
]


def seed_default_questions(engine: Engine) -> int:
    """Insert :data:`DEFAULT_QUESTIONS` into an empty catalog.

    Returns the number of questions inserted.
    """
    with Session(engine) as session:
        existing = session.scalar(select(func.count()).select_from(Question)) or 0
        if existing:
            return 0

        for position, (text, qtype, required) in enumerate(DEFAULT_QUESTIONS):
            session.add(Question(
                text=text,
                type=qtype.value,
                required=required,
                order=position,
            ))
        session.commit()

    logger.info("Seeded %d default questions", len(DEFAULT_QUESTIONS))
    return len(DEFAULT_QUESTIONS)
