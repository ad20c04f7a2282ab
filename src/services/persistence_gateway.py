"""
Persistence gateway contract for QSTUDY.
Defines the storage operations the study builder and participant flow depend on,
plus an in-memory implementation used for local runs and tests.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.data.schemas import (
    CommentarySubmission,
    PreSortSubmission,
    QSortSubmission,
    SessionProgressUpdate,
    StimulusCreate,
    StimulusUpdate,
)
from src.exceptions import (
    GridValidationError,
    PlacementValidationError,
    RecordNotFoundError,
    ValidationError,
)
from src.logic.grid_configuration import (
    GridConfiguration,
    default_grid_configuration,
    validate_grid_configuration,
)
from src.logic.placement import Placement, validate_placements
from src.logic.stimulus import Stimulus, UploadStatus

logger = logging.getLogger(__name__)


def _format_pydantic_errors(error: PydanticValidationError) -> list[str]:
    return [f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in error.errors()]


class PersistenceGateway(ABC):
    """
    Storage contract for grids, stimuli, participant progress and submissions.

    Implementations raise ``PersistenceError`` (or a subclass) when storage
    fails; validation failures raise the matching ``ValidationError``.
    """

    # Grid configuration
    @abstractmethod
    def get_grid_configuration(self, study_id: str) -> GridConfiguration:
        """Return the study's grid, or the default grid if none was saved."""

    @abstractmethod
    def save_grid_configuration(self, study_id: str, config: GridConfiguration) -> GridConfiguration:
        """Validate and store the study's grid."""

    # Stimuli
    @abstractmethod
    def list_stimuli(self, study_id: str) -> list[Stimulus]:
        """Return the study's stimuli in creation order."""

    @abstractmethod
    def create_stimulus(
        self,
        study_id: str,
        type: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Stimulus:
        """Create a stimulus for the study."""

    @abstractmethod
    def update_stimulus(self, study_id: str, stimulus_id: str, partial: dict[str, Any]) -> Stimulus:
        """Apply a partial update to a stimulus."""

    @abstractmethod
    def delete_stimulus(self, study_id: str, stimulus_id: str) -> None:
        """Delete a stimulus."""

    @abstractmethod
    def delete_study(self, study_id: str) -> None:
        """Destroy the grid and stimuli of a study."""

    # Participant progress
    @abstractmethod
    def get_session_progress(self, session_id: str) -> dict[str, Any] | None:
        """Return persisted progress (``currentStep``, ``completedSteps``, ``stepData``) or None."""

    @abstractmethod
    def update_session_progress(self, session_id: str, update: dict[str, Any]) -> dict[str, Any]:
        """Record a step transition."""

    # Step submissions
    @abstractmethod
    def submit_pre_sort(self, session_id: str, payload: dict[str, Any]) -> None:
        """Store the pre-sorting piles."""

    @abstractmethod
    def submit_q_sort(self, session_id: str, payload: dict[str, Any]) -> None:
        """Reconcile and store the q-sort placements."""

    @abstractmethod
    def submit_commentary(self, session_id: str, payload: dict[str, Any]) -> None:
        """Store the participant's commentary."""

    # ------------------------------------------------------------------ shared checks

    def _check_grid(self, config: GridConfiguration) -> None:
        result = validate_grid_configuration(config)
        if not result.valid:
            raise GridValidationError(result.error)

    def _parse_progress_update(self, update: dict[str, Any]) -> SessionProgressUpdate:
        try:
            return SessionProgressUpdate.model_validate(update)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid progress update: {'; '.join(_format_pydantic_errors(e))}", field="progress"
            ) from e

    def _parse_submission(self, schema, payload: dict[str, Any], field: str):
        try:
            return schema.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {field} submission: {'; '.join(_format_pydantic_errors(e))}", field=field
            ) from e

    def _parse_stimulus_create(self, type: str, content: str, metadata: dict[str, Any] | None) -> StimulusCreate:
        return self._parse_submission(
            StimulusCreate, {"type": type, "content": content, "metadata": metadata}, "stimulus"
        )

    def _parse_stimulus_update(self, partial: dict[str, Any]) -> dict[str, Any]:
        parsed = self._parse_submission(StimulusUpdate, partial, "stimulus")
        return parsed.model_dump(exclude_unset=True)

    def _check_q_sort(self, payload: dict[str, Any]) -> QSortSubmission:
        """
        Reconcile a q-sort payload with the study's grid and complete stimuli.

        Raises:
            PlacementValidationError: If the payload is malformed or does not fit the grid
        """
        try:
            submission = QSortSubmission.model_validate(payload)
        except PydanticValidationError as e:
            raise PlacementValidationError(_format_pydantic_errors(e)) from e

        grid = self.get_grid_configuration(submission.study_id)
        stimulus_ids = [s.id for s in self.list_stimuli(submission.study_id) if s.is_complete]
        placements = [Placement(p.stimulus_id, p.column_value) for p in submission.placements]

        result = validate_placements(grid, stimulus_ids, placements)
        if not result.valid:
            raise PlacementValidationError(result.errors)
        return submission


class InMemoryPersistenceGateway(PersistenceGateway):
    """Dict-backed gateway; state lives for the lifetime of the instance."""

    def __init__(self):
        self.grids: dict[str, dict[str, Any]] = {}
        self.stimuli: dict[str, list[Stimulus]] = {}
        self.progress: dict[str, dict[str, Any]] = {}
        self.submissions: dict[tuple[str, str], dict[str, Any]] = {}

    def get_grid_configuration(self, study_id: str) -> GridConfiguration:
        stored = self.grids.get(study_id)
        if stored is None:
            return default_grid_configuration()
        return GridConfiguration.from_dict(stored)

    def save_grid_configuration(self, study_id: str, config: GridConfiguration) -> GridConfiguration:
        self._check_grid(config)
        self.grids[study_id] = config.to_dict()
        logger.info(f"Saved grid configuration for study {study_id}")
        return config

    def list_stimuli(self, study_id: str) -> list[Stimulus]:
        return [copy.deepcopy(stimulus) for stimulus in self.stimuli.get(study_id, [])]

    def create_stimulus(
        self,
        study_id: str,
        type: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Stimulus:
        data = self._parse_stimulus_create(type, content, metadata)
        stimulus = Stimulus.create(data.type, data.content, data.metadata)
        self.stimuli.setdefault(study_id, []).append(stimulus)
        logger.info(f"Created {stimulus.type.value} stimulus {stimulus.id} for study {study_id}")
        return copy.deepcopy(stimulus)

    def update_stimulus(self, study_id: str, stimulus_id: str, partial: dict[str, Any]) -> Stimulus:
        changes = self._parse_stimulus_update(partial)
        stimulus = self._find_stimulus(study_id, stimulus_id)
        for key, value in changes.items():
            setattr(stimulus, key, value)
        stimulus.__post_init__()
        return copy.deepcopy(stimulus)

    def delete_stimulus(self, study_id: str, stimulus_id: str) -> None:
        stimulus = self._find_stimulus(study_id, stimulus_id)
        self.stimuli[study_id].remove(stimulus)
        logger.info(f"Deleted stimulus {stimulus_id} from study {study_id}")

    def delete_study(self, study_id: str) -> None:
        self.grids.pop(study_id, None)
        self.stimuli.pop(study_id, None)
        logger.info(f"Deleted grid and stimuli of study {study_id}")

    def _find_stimulus(self, study_id: str, stimulus_id: str) -> Stimulus:
        for stimulus in self.stimuli.get(study_id, []):
            if stimulus.id == stimulus_id:
                return stimulus
        raise RecordNotFoundError("Stimulus", stimulus_id)

    def get_session_progress(self, session_id: str) -> dict[str, Any] | None:
        record = self.progress.get(session_id)
        return copy.deepcopy(record) if record else None

    def update_session_progress(self, session_id: str, update: dict[str, Any]) -> dict[str, Any]:
        parsed = self._parse_progress_update(update)
        record = self.progress.setdefault(
            session_id,
            {"studyId": parsed.study_id, "currentStep": parsed.current_step, "completedSteps": [], "skippedSteps": [], "stepData": {}},
        )
        record["currentStep"] = parsed.current_step
        if parsed.completed_step:
            if parsed.completed_step not in record["completedSteps"]:
                record["completedSteps"].append(parsed.completed_step)
            if parsed.step_data is not None:
                record["stepData"][parsed.completed_step] = copy.deepcopy(parsed.step_data)
        elif isinstance(parsed.step_data, dict) and parsed.step_data.get("skippedStep"):
            skipped = parsed.step_data["skippedStep"]
            if skipped not in record["skippedSteps"]:
                record["skippedSteps"].append(skipped)
        return copy.deepcopy(record)

    def submit_pre_sort(self, session_id: str, payload: dict[str, Any]) -> None:
        submission = self._parse_submission(PreSortSubmission, payload, "pre-sort")
        self.submissions[(session_id, "pre-sorting")] = submission.model_dump(by_alias=True)

    def submit_q_sort(self, session_id: str, payload: dict[str, Any]) -> None:
        submission = self._check_q_sort(payload)
        self.submissions[(session_id, "q-sort")] = submission.model_dump(by_alias=True)
        logger.info(f"Stored q-sort of session {session_id} ({len(submission.placements)} placements)")

    def submit_commentary(self, session_id: str, payload: dict[str, Any]) -> None:
        submission = self._parse_submission(CommentarySubmission, payload, "commentary")
        self.submissions[(session_id, "commentary")] = submission.model_dump(by_alias=True)


def get_persistence_gateway(db_session=None) -> PersistenceGateway:
    """
    Build the gateway selected by ``PERSISTENCE_BACKEND``.

    Args:
        db_session: SQLAlchemy session for the SQL backend; a new session is
            opened from the database factory when omitted
    """
    from config.config import config

    backend = config.persistence.backend
    if backend == "sql":
        from src.services.sql_persistence_gateway import SQLPersistenceGateway

        if db_session is None:
            from src.data.database_factory import get_session_sync

            db_session = get_session_sync()
        return SQLPersistenceGateway(db_session)

    logger.debug(f"Using in-memory persistence gateway (backend={backend})")
    return InMemoryPersistenceGateway()
