"""SQLAlchemy models for the Store module.

Every table carries a ``subject`` column; one schema serves all practice areas.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.modules.store.interface import (
    AdaptivePreferences,
    AttemptRecord,
    LearningGap,
    QuestionMastery,
    SelectionLogEntry,
    Subtopic,
    SubtopicProgress,
)
from src.shared.database import Base
from src.shared.datetime_utils import ensure_utc, utc_now
from src.shared.models import (
    DifficultyPreference,
    GapStatus,
    QuestionStatus,
    SelectionReason,
)


class AdaptivePreferencesModel(Base):
    """Adaptive preferences database model."""

    __tablename__ = "adaptive_preferences"
    __table_args__ = (
        UniqueConstraint("subject", "user_id", name="uq_adaptive_preferences_subject_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    adaptivity_level: Mapped[int] = mapped_column(Integer, default=5)
    difficulty_preference: Mapped[str] = mapped_column(String(32), default="balanced")
    enable_adaptive_learning: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    @property
    def difficulty_preference_enum(self) -> DifficultyPreference:
        """Stored preference as enum; unknown values read as balanced."""
        try:
            return DifficultyPreference(self.difficulty_preference)
        except ValueError:
            return DifficultyPreference.BALANCED

    def to_record(self) -> AdaptivePreferences:
        return AdaptivePreferences(
            user_id=self.user_id,
            adaptivity_level=self.adaptivity_level,
            difficulty_preference=self.difficulty_preference_enum,
            enable_adaptive_learning=self.enable_adaptive_learning,
            created_at=ensure_utc(self.created_at),
            updated_at=ensure_utc(self.updated_at),
        )


class SubtopicModel(Base):
    """Subtopic listing, owned by content authoring and read here."""

    __tablename__ = "subtopics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    topic_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence_number: Mapped[int] = mapped_column(Integer, default=0)

    def to_record(self) -> Subtopic:
        return Subtopic(
            id=self.id,
            topic_id=self.topic_id,
            name=self.name,
            sequence_number=self.sequence_number,
        )


class SubtopicProgressModel(Base):
    """Per-user subtopic progress database model."""

    __tablename__ = "subtopic_progress"
    __table_args__ = (
        UniqueConstraint(
            "subject", "user_id", "subtopic_id", name="uq_subtopic_progress_subject_user_subtopic"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subtopic_id: Mapped[int] = mapped_column(Integer, nullable=False)
    mastery_level: Mapped[int] = mapped_column(Integer, default=0)
    questions_attempted: Mapped[int] = mapped_column(Integer, default=0)
    questions_correct: Mapped[int] = mapped_column(Integer, default=0)
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def to_record(self) -> SubtopicProgress:
        return SubtopicProgress(
            user_id=self.user_id,
            subtopic_id=self.subtopic_id,
            mastery_level=self.mastery_level,
            questions_attempted=self.questions_attempted,
            questions_correct=self.questions_correct,
            last_attempt_at=ensure_utc(self.last_attempt_at),
        )


class QuestionAttemptModel(Base):
    """One answered question, with the concept data gap detection groups by."""

    __tablename__ = "question_attempts"
    __table_args__ = (
        Index("ix_question_attempts_subject_user_subtopic", "subject", "user_id", "subtopic_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subtopic_id: Mapped[int] = mapped_column(Integer, nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    question_type_id: Mapped[int] = mapped_column(Integer, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    session_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def to_record(self) -> AttemptRecord:
        return AttemptRecord(
            question_id=self.question_id,
            question_type_id=self.question_type_id,
            is_correct=self.is_correct,
            session_id=self.session_id,
            attempted_at=ensure_utc(self.attempted_at),
        )


class QuestionMasteryModel(Base):
    """Per-user question mastery database model."""

    __tablename__ = "question_mastery"
    __table_args__ = (
        UniqueConstraint(
            "subject", "user_id", "question_id", name="uq_question_mastery_subject_user_question"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    success_rate: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(32), default=QuestionStatus.TO_START.value)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def to_record(self) -> QuestionMastery:
        return QuestionMastery(
            user_id=self.user_id,
            question_id=self.question_id,
            attempt_count=self.attempt_count,
            success_rate=self.success_rate,
            status=QuestionStatus(self.status),
        )


class LearningGapModel(Base):
    """Learning gap database model.

    The partial unique index keeps at most one open gap per concept even when
    two workers detect it concurrently.
    """

    __tablename__ = "learning_gaps"
    __table_args__ = (
        Index(
            "uq_learning_gaps_open_concept",
            "subject",
            "user_id",
            "subtopic_id",
            "concept_description",
            unique=True,
            postgresql_where=text("resolved_at IS NULL"),
            sqlite_where=text("resolved_at IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subtopic_id: Mapped[int] = mapped_column(Integer, nullable=False)
    concept_description: Mapped[str] = mapped_column(String(255), nullable=False)
    severity: Mapped[int] = mapped_column(Integer, nullable=False)
    evidence_question_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(32), default=GapStatus.ACTIVE.value)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def to_record(self) -> LearningGap:
        return LearningGap(
            id=self.id,
            user_id=self.user_id,
            subtopic_id=self.subtopic_id,
            concept_description=self.concept_description,
            severity=self.severity,
            evidence_question_ids=[int(qid) for qid in (self.evidence_question_ids or [])],
            status=GapStatus(self.status),
            detected_at=ensure_utc(self.detected_at),
            resolved_at=ensure_utc(self.resolved_at),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "subject": self.subject,
            "user_id": self.user_id,
            "subtopic_id": self.subtopic_id,
            "concept_description": self.concept_description,
            "severity": self.severity,
            "evidence_question_ids": self.evidence_question_ids,
            "status": self.status,
            "detected_at": self.detected_at,
            "resolved_at": self.resolved_at,
        }


class SelectionLogModel(Base):
    """Append-only audit of questions served in a session."""

    __tablename__ = "selection_logs"
    __table_args__ = (
        Index("ix_selection_logs_subject_session", "subject", "session_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    session_id: Mapped[int] = mapped_column(Integer, nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    selection_reason: Mapped[str] = mapped_column(String(64), nullable=False)
    difficulty_level: Mapped[int] = mapped_column(Integer, nullable=False)
    sequence_position: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def to_record(self) -> SelectionLogEntry:
        return SelectionLogEntry(
            session_id=self.session_id,
            question_id=self.question_id,
            selection_reason=SelectionReason(self.selection_reason),
            difficulty_level=self.difficulty_level,
            sequence_position=self.sequence_position,
            created_at=ensure_utc(self.created_at),
        )
