"""
Repository classes for data access layer.
Implements the repository pattern for grid configurations, stimuli, participant progress and submissions.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import asc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import ParticipantProgress, StepSubmission, StudyGridConfiguration, StudyStimulus

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Base repository with common CRUD operations.

    Database errors are logged and re-raised so callers can tell a missing
    record apart from unreachable storage.
    """

    def __init__(self, session: Session, model_class):
        self.session = session
        self.model_class = model_class

    def get_by_id(self, id: str) -> Any | None:
        """Get entity by primary key."""
        try:
            return self.session.get(self.model_class, id)
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self.model_class.__name__} by ID {id}: {e}")
            raise

    def delete(self, id: str) -> bool:
        """Delete entity by primary key."""
        entity = self.get_by_id(id)
        if entity is None:
            return False
        try:
            self.session.delete(entity)
            self.session.flush()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error deleting {self.model_class.__name__} {id}: {e}")
            raise

    def count(self) -> int:
        """Count total entities."""
        try:
            return self.session.query(self.model_class).count()
        except SQLAlchemyError as e:
            logger.error(f"Error counting {self.model_class.__name__}: {e}")
            raise


class GridConfigurationRepository(BaseRepository):
    """Repository for StudyGridConfiguration entities."""

    def __init__(self, session: Session):
        super().__init__(session, StudyGridConfiguration)

    def upsert(self, study_id: str, configuration: dict[str, Any]) -> StudyGridConfiguration:
        """Create or replace the grid of a study."""
        record = self.get_by_id(study_id)
        if record is None:
            record = StudyGridConfiguration(study_id=study_id, configuration=configuration)
            self.session.add(record)
        else:
            record.configuration = configuration
            record.updated_at = datetime.utcnow()
        self.session.flush()
        return record


class StimulusRepository(BaseRepository):
    """Repository for StudyStimulus entities."""

    def __init__(self, session: Session):
        super().__init__(session, StudyStimulus)

    def list_by_study(self, study_id: str) -> list[StudyStimulus]:
        """Get the stimuli of a study in creation order."""
        try:
            return (
                self.session.query(StudyStimulus)
                .filter(StudyStimulus.study_id == study_id)
                .order_by(asc(StudyStimulus.position))
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing stimuli for study {study_id}: {e}")
            raise

    def get_for_study(self, study_id: str, stimulus_id: str) -> StudyStimulus | None:
        """Get a stimulus only if it belongs to the study."""
        stimulus = self.get_by_id(stimulus_id)
        if stimulus is None or stimulus.study_id != study_id:
            return None
        return stimulus

    def create(
        self,
        study_id: str,
        stimulus_id: str,
        type: str,
        content: str,
        metadata: dict[str, Any] | None,
        upload_status: str,
    ) -> StudyStimulus:
        """Create a stimulus at the end of the study's list."""
        position = (
            self.session.query(func.coalesce(func.max(StudyStimulus.position), -1))
            .filter(StudyStimulus.study_id == study_id)
            .scalar()
            + 1
        )
        stimulus = StudyStimulus(
            id=stimulus_id,
            study_id=study_id,
            type=type,
            content=content,
            stimulus_metadata=metadata,
            upload_status=upload_status,
            position=position,
        )
        self.session.add(stimulus)
        self.session.flush()
        return stimulus

    def delete_by_study(self, study_id: str) -> int:
        """Delete all stimuli of a study; returns the number removed."""
        return (
            self.session.query(StudyStimulus)
            .filter(StudyStimulus.study_id == study_id)
            .delete(synchronize_session=False)
        )


class ParticipantProgressRepository(BaseRepository):
    """Repository for ParticipantProgress entities."""

    def __init__(self, session: Session):
        super().__init__(session, ParticipantProgress)

    def get_or_create(self, session_id: str, study_id: str | None, current_step: str) -> ParticipantProgress:
        """Get the progress record of a session, creating it on first use."""
        progress = self.get_by_id(session_id)
        if progress is None:
            progress = ParticipantProgress(
                session_id=session_id,
                study_id=study_id,
                current_step=current_step,
                completed_steps=[],
                skipped_steps=[],
                step_data={},
            )
            self.session.add(progress)
            self.session.flush()
        return progress


class StepSubmissionRepository(BaseRepository):
    """Repository for StepSubmission entities."""

    def __init__(self, session: Session):
        super().__init__(session, StepSubmission)

    def get_for_step(self, session_id: str, step: str) -> StepSubmission | None:
        """Get the submission a session made for one step."""
        return (
            self.session.query(StepSubmission)
            .filter(StepSubmission.session_id == session_id, StepSubmission.step == step)
            .first()
        )

    def upsert(self, session_id: str, study_id: str, step: str, payload: dict[str, Any]) -> StepSubmission:
        """Store a step submission; a resubmission replaces the earlier payload."""
        submission = self.get_for_step(session_id, step)
        if submission is None:
            submission = StepSubmission(session_id=session_id, study_id=study_id, step=step, payload=payload)
            self.session.add(submission)
        else:
            submission.payload = payload
            submission.updated_at = datetime.utcnow()
        self.session.flush()
        return submission
