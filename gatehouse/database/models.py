"""
gatehouse.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- questions     — The ordered question catalog shown on every application
- applications  — One row per applicant submission, carries review state
- answers       — Per-question text / audio captured at submission time
- oauth_states  — One-time CSRF tokens for the Discord OAuth callback
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Gatehouse ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class QuestionType(enum.StrEnum):
    """How an applicant answers a question."""
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    AUDIO = "audio"


class ApplicationStatus(enum.StrEnum):
    """Review states of an application.  No row means "never applied"."""
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    REVISION = "revision"


# ---------------------------------------------------------------------------
# Questions: the catalog
# ---------------------------------------------------------------------------
class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QuestionType.SHORT_TEXT.value
    )
    required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Deleting a question removes every answer given to it
    answers: Mapped[list[Answer]] = relationship(
        back_populates="question", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_questions_order", "order"),
    )

    def __repr__(self) -> str:
        return f"<Question id={self.id} type={self.type} order={self.order}>"


# ---------------------------------------------------------------------------
# Applications: one per applicant submission
# ---------------------------------------------------------------------------
class Application(Base):
    """A whitelist application and its review state.

    ``revision_question_ids`` holds the questions currently flagged for the
    applicant to re-answer; ``revised_question_ids`` accumulates every
    question the applicant has re-answered across revision rounds.
    """
    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    applicant_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    applicant_name: Mapped[str] = mapped_column(String(100), nullable=False)
    applicant_avatar: Mapped[str | None] = mapped_column(String(100), default=None)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApplicationStatus.PENDING.value
    )
    denial_reason: Mapped[str | None] = mapped_column(Text, default=None)
    revision_reason: Mapped[str | None] = mapped_column(Text, default=None)
    revision_question_ids: Mapped[list] = mapped_column(JSONB, default=list)
    revised_question_ids: Mapped[list] = mapped_column(JSONB, default=list)
    reviewer_name: Mapped[str | None] = mapped_column(String(100), default=None)
    reviewer_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    answers: Mapped[list[Answer]] = relationship(
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="Answer.id",
    )

    __table_args__ = (
        Index("ix_applications_applicant_status", "applicant_id", "status"),
        Index("ix_applications_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Application id={self.id} applicant={self.applicant_id} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Answers: content captured for one question of one application
# ---------------------------------------------------------------------------
class Answer(Base):
    __tablename__ = "answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    text_answer: Mapped[str | None] = mapped_column(Text, default=None)
    audio_url: Mapped[str | None] = mapped_column(String(500), default=None)
    # Set whenever audio_url is written; retention ages audio from here.
    audio_uploaded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    application: Mapped[Application] = relationship(back_populates="answers")
    question: Mapped[Question] = relationship(back_populates="answers")

    __table_args__ = (
        Index("ix_answers_application_question", "application_id", "question_id"),
        Index("ix_answers_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Answer id={self.id} app={self.application_id} "
            f"question={self.question_id}>"
        )


# ---------------------------------------------------------------------------
# OAuthState: one-time CSRF tokens for OAuth callback validation
# ---------------------------------------------------------------------------
class OAuthState(Base):
    __tablename__ = "oauth_states"

    state: Mapped[str] = mapped_column(String(128), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_oauth_states_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OAuthState state={self.state[:8]!r}...>"
