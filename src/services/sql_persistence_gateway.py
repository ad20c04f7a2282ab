"""
SQLAlchemy-backed persistence gateway.
Stores grids, stimuli, participant progress and step submissions through the repositories.
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.data.models import StudyStimulus
from src.data.repositories import (
    GridConfigurationRepository,
    ParticipantProgressRepository,
    StepSubmissionRepository,
    StimulusRepository,
)
from src.data.schemas import CommentarySubmission, PreSortSubmission
from src.exceptions import PersistenceError, RecordNotFoundError
from src.logic.grid_configuration import GridConfiguration, default_grid_configuration
from src.logic.stimulus import Stimulus
from src.services.persistence_gateway import PersistenceGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_stimulus(record: StudyStimulus) -> Stimulus:
    return Stimulus(
        id=record.id,
        type=record.type,
        content=record.content,
        metadata=record.stimulus_metadata,
        upload_status=record.upload_status,
    )


class SQLPersistenceGateway(PersistenceGateway):
    """
    Gateway over a SQLAlchemy session.

    Every write commits on success and rolls back on failure. Database errors
    surface as ``PersistenceError``.
    """

    def __init__(self, db_session: Session):
        self.db_session = db_session
        self.grids = GridConfigurationRepository(db_session)
        self.stimuli = StimulusRepository(db_session)
        self.progress = ParticipantProgressRepository(db_session)
        self.submissions = StepSubmissionRepository(db_session)

    def _read(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}")
            raise PersistenceError(f"Database error during {operation}: {e}") from e

    def _write(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            result = fn()
            self.db_session.commit()
            return result
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(f"Database error during {operation}: {e}")
            raise PersistenceError(f"Database error during {operation}: {e}") from e
        except Exception:
            self.db_session.rollback()
            raise

    # ------------------------------------------------------------------ grid

    def get_grid_configuration(self, study_id: str) -> GridConfiguration:
        record = self._read("get_grid_configuration", lambda: self.grids.get_by_id(study_id))
        if record is None:
            return default_grid_configuration()
        return GridConfiguration.from_dict(record.configuration)

    def save_grid_configuration(self, study_id: str, config: GridConfiguration) -> GridConfiguration:
        self._check_grid(config)
        self._write("save_grid_configuration", lambda: self.grids.upsert(study_id, config.to_dict()))
        logger.info(f"Saved grid configuration for study {study_id}")
        return config

    # ------------------------------------------------------------------ stimuli

    def list_stimuli(self, study_id: str) -> list[Stimulus]:
        records = self._read("list_stimuli", lambda: self.stimuli.list_by_study(study_id))
        return [_to_stimulus(record) for record in records]

    def create_stimulus(
        self,
        study_id: str,
        type: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Stimulus:
        data = self._parse_stimulus_create(type, content, metadata)
        stimulus = Stimulus.create(data.type, data.content, data.metadata)
        self._write(
            "create_stimulus",
            lambda: self.stimuli.create(
                study_id,
                stimulus.id,
                stimulus.type.value,
                stimulus.content,
                stimulus.metadata,
                stimulus.upload_status.value,
            ),
        )
        logger.info(f"Created {stimulus.type.value} stimulus {stimulus.id} for study {study_id}")
        return stimulus

    def update_stimulus(self, study_id: str, stimulus_id: str, partial: dict[str, Any]) -> Stimulus:
        changes = self._parse_stimulus_update(partial)

        def apply() -> StudyStimulus:
            record = self.stimuli.get_for_study(study_id, stimulus_id)
            if record is None:
                raise RecordNotFoundError("Stimulus", stimulus_id)
            for key, value in changes.items():
                setattr(record, "stimulus_metadata" if key == "metadata" else key, value)
            self.db_session.flush()
            return record

        return _to_stimulus(self._write("update_stimulus", apply))

    def delete_stimulus(self, study_id: str, stimulus_id: str) -> None:
        def apply() -> None:
            record = self.stimuli.get_for_study(study_id, stimulus_id)
            if record is None:
                raise RecordNotFoundError("Stimulus", stimulus_id)
            self.db_session.delete(record)

        self._write("delete_stimulus", apply)
        logger.info(f"Deleted stimulus {stimulus_id} from study {study_id}")

    def delete_study(self, study_id: str) -> None:
        def apply() -> None:
            self.grids.delete(study_id)
            self.stimuli.delete_by_study(study_id)

        self._write("delete_study", apply)
        logger.info(f"Deleted grid and stimuli of study {study_id}")

    # ------------------------------------------------------------------ progress

    def get_session_progress(self, session_id: str) -> dict[str, Any] | None:
        record = self._read("get_session_progress", lambda: self.progress.get_by_id(session_id))
        if record is None:
            return None
        return {
            "studyId": record.study_id,
            "currentStep": record.current_step,
            "completedSteps": list(record.completed_steps or []),
            "skippedSteps": list(record.skipped_steps or []),
            "stepData": dict(record.step_data or {}),
        }

    def update_session_progress(self, session_id: str, update: dict[str, Any]) -> dict[str, Any]:
        parsed = self._parse_progress_update(update)

        def apply() -> None:
            record = self.progress.get_or_create(session_id, parsed.study_id, parsed.current_step)
            record.current_step = parsed.current_step
            if parsed.completed_step:
                completed = list(record.completed_steps or [])
                if parsed.completed_step not in completed:
                    completed.append(parsed.completed_step)
                record.completed_steps = completed
                if parsed.step_data is not None:
                    record.step_data = {**(record.step_data or {}), parsed.completed_step: parsed.step_data}
            elif isinstance(parsed.step_data, dict) and parsed.step_data.get("skippedStep"):
                skipped = list(record.skipped_steps or [])
                if parsed.step_data["skippedStep"] not in skipped:
                    skipped.append(parsed.step_data["skippedStep"])
                record.skipped_steps = skipped
            self.db_session.flush()

        self._write("update_session_progress", apply)
        return self.get_session_progress(session_id)

    # ------------------------------------------------------------------ submissions

    def submit_pre_sort(self, session_id: str, payload: dict[str, Any]) -> None:
        submission = self._parse_submission(PreSortSubmission, payload, "pre-sort")
        self._write(
            "submit_pre_sort",
            lambda: self.submissions.upsert(
                session_id, submission.study_id, "pre-sorting", submission.model_dump(by_alias=True)
            ),
        )

    def submit_q_sort(self, session_id: str, payload: dict[str, Any]) -> None:
        submission = self._check_q_sort(payload)
        self._write(
            "submit_q_sort",
            lambda: self.submissions.upsert(
                session_id, submission.study_id, "q-sort", submission.model_dump(by_alias=True)
            ),
        )
        logger.info(f"Stored q-sort of session {session_id} ({len(submission.placements)} placements)")

    def submit_commentary(self, session_id: str, payload: dict[str, Any]) -> None:
        submission = self._parse_submission(CommentarySubmission, payload, "commentary")
        self._write(
            "submit_commentary",
            lambda: self.submissions.upsert(
                session_id, submission.study_id, "commentary", submission.model_dump(by_alias=True)
            ),
        )
