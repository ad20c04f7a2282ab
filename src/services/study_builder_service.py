"""
Study Builder Service
Loads and saves researcher-authored studies through the persistence gateway.
"""

from typing import Any

from config.config import config
from src.exceptions import BusinessLogicError, PersistenceError, StudyValidationError
from src.logic.stimulus import Stimulus
from src.logic.study_builder import StudyBuilderState
from src.services.persistence_gateway import PersistenceGateway
from src.utils.logging import get_logger

logger = get_logger(__name__)


class StudyBuilderService:
    """
    Service for the study authoring workflow.

    Stimuli are written through immediately; the grid is written on ``save_study``
    once the whole study validates. Storage failures propagate to the caller so
    the researcher sees that the save did not happen.
    """

    def __init__(self, gateway: PersistenceGateway, feature_flags=None):
        self.gateway = gateway
        self.feature_flags = feature_flags or config.feature_flags

    def _ensure_enabled(self) -> None:
        if not self.feature_flags.enable_study_builder:
            raise BusinessLogicError("Study builder is disabled", user_message="Study editing is currently unavailable.")

    def load_study(self, study_id: str, study_metadata: dict[str, Any] | None = None) -> StudyBuilderState:
        """Build a fresh builder state from the stored grid and stimuli."""
        grid = self.gateway.get_grid_configuration(study_id)
        stimuli = self.gateway.list_stimuli(study_id)
        logger.info(
            f"Loaded study {study_id} with {len(stimuli)} stimuli",
            extra={"study_id": study_id},
        )
        return StudyBuilderState(study_metadata=study_metadata, grid_configuration=grid, stimuli=stimuli)

    def save_study(self, study_id: str, state: StudyBuilderState) -> None:
        """
        Validate the study and persist its grid.

        Raises:
            StudyValidationError: If the study does not validate; nothing is written
            PersistenceError: If storage fails; the state stays dirty
        """
        self._ensure_enabled()
        if not state.validate_study():
            errors = [error.to_dict() for error in state.validation_errors]
            logger.warning(
                f"Refusing to save study {study_id}: {[e['field'] for e in errors]}",
                extra={"study_id": study_id},
            )
            raise StudyValidationError(errors)

        try:
            self.gateway.save_grid_configuration(study_id, state.grid_configuration)
        except PersistenceError as e:
            logger.error(f"Saving study {study_id} failed: {e}", extra={"study_id": study_id})
            raise

        state.mark_saved()
        logger.info(f"Saved study {study_id}", extra={"study_id": study_id})

    def add_stimulus(
        self,
        study_id: str,
        state: StudyBuilderState,
        type: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Stimulus:
        """Create a stimulus in storage and append it to the builder state."""
        self._ensure_enabled()
        stimulus = self.gateway.create_stimulus(study_id, type, content, metadata)
        state.add_stimulus(stimulus)
        return stimulus

    def update_stimulus(
        self, study_id: str, state: StudyBuilderState, stimulus_id: str, partial: dict[str, Any]
    ) -> Stimulus:
        """Apply a partial update (e.g. ``{"uploadStatus": "complete"}``) in storage and in the state."""
        self._ensure_enabled()
        updated = self.gateway.update_stimulus(study_id, stimulus_id, partial)
        state.replace_stimulus(updated)
        return updated

    def remove_stimulus(self, study_id: str, state: StudyBuilderState, stimulus_id: str) -> None:
        self._ensure_enabled()
        self.gateway.delete_stimulus(study_id, stimulus_id)
        state.remove_stimulus(stimulus_id)

    def delete_study(self, study_id: str, state: StudyBuilderState | None = None) -> None:
        """Destroy the study's grid and stimuli and reset the builder state."""
        self._ensure_enabled()
        self.gateway.delete_study(study_id)
        if state is not None:
            state.reset()
        logger.info(f"Deleted study {study_id}", extra={"study_id": study_id})
