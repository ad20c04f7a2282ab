"""
Database models for the QSTUDY system.
Defines SQLAlchemy models for grid configurations, stimuli, participant progress and step submissions.
"""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, validates
from sqlalchemy.types import TypeDecorator

from src.logic.participant_session import ParticipantStep
from src.logic.stimulus import StimulusType, UploadStatus

Base = declarative_base()


def _new_id() -> str:
    return str(uuid4())


# Database-agnostic JSON column type
class JSONColumn(TypeDecorator):
    """JSON column that uses JSONB for PostgreSQL and JSON for other databases."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


class StudyGridConfiguration(Base):
    """Grid configuration owned by one study, stored in its wire shape."""

    __tablename__ = "study_grid_configurations"

    study_id = Column(String(64), primary_key=True)
    configuration = Column(JSONColumn, nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<StudyGridConfiguration(study_id={self.study_id})>"


class StudyStimulus(Base):
    """Stimulus belonging to a study."""

    __tablename__ = "study_stimuli"

    id = Column(String(64), primary_key=True, default=_new_id)
    study_id = Column(String(64), nullable=False)
    type = Column(String(20), nullable=False)
    content = Column(Text, nullable=False, default="")
    stimulus_metadata = Column(JSONColumn, nullable=True)
    upload_status = Column(String(20), nullable=False, default=UploadStatus.PENDING.value)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_stimuli_study", "study_id"),
        Index("idx_stimuli_study_position", "study_id", "position"),
    )

    @validates("type")
    def validate_type(self, key, value):
        """Validate stimulus type."""
        if value not in [t.value for t in StimulusType]:
            raise ValueError(f"Invalid stimulus type: {value}")
        return value

    @validates("upload_status")
    def validate_upload_status(self, key, value):
        """Validate upload status."""
        if value not in [s.value for s in UploadStatus]:
            raise ValueError(f"Invalid upload status: {value}")
        return value

    def __repr__(self):
        return f"<StudyStimulus(id={self.id}, study_id={self.study_id}, type={self.type})>"


class ParticipantProgress(Base):
    """Resumable progress of one participant session."""

    __tablename__ = "participant_progress"

    session_id = Column(String(64), primary_key=True)
    study_id = Column(String(64), nullable=True)
    current_step = Column(String(50), nullable=False)
    completed_steps = Column(JSONColumn, nullable=False, default=list)
    skipped_steps = Column(JSONColumn, nullable=False, default=list)
    step_data = Column(JSONColumn, nullable=True)
    started_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_progress_study", "study_id"),
        Index("idx_progress_step", "current_step"),
    )

    @validates("current_step")
    def validate_current_step(self, key, value):
        """Validate participant step."""
        if value not in [s.value for s in ParticipantStep]:
            raise ValueError(f"Invalid participant step: {value}")
        return value

    def __repr__(self):
        return f"<ParticipantProgress(session_id={self.session_id}, step={self.current_step})>"


class StepSubmission(Base):
    """Dedicated submission of a pre-sorting, q-sort or commentary step."""

    __tablename__ = "step_submissions"

    id = Column(String(64), primary_key=True, default=_new_id)
    session_id = Column(String(64), nullable=False)
    study_id = Column(String(64), nullable=False)
    step = Column(String(50), nullable=False)
    payload = Column(JSONColumn, nullable=False)
    submitted_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_submission_session_step", "session_id", "step", unique=True),
        Index("idx_submission_study", "study_id"),
    )

    def __repr__(self):
        return f"<StepSubmission(session_id={self.session_id}, step={self.step})>"
