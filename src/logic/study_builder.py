"""
Study builder logic for the researcher authoring workflow.
Holds study metadata, grid configuration and stimuli with aggregate validation.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from src.logic.grid_configuration import (
    GridConfiguration,
    default_grid_configuration,
    validate_grid_configuration,
)
from src.logic.stimulus import Stimulus

logger = logging.getLogger(__name__)

Listener = Callable[["StudyBuilderState"], None]


@dataclass
class FieldError:
    """Validation problem keyed to the offending field."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class StudyBuilderState:
    """
    Mutable authoring aggregate owned by one builder context.

    Construct one per authoring session and pass it around explicitly. Every
    mutation marks the state dirty and notifies subscribers; only
    ``mark_saved`` clears the dirty flag.
    """

    def __init__(
        self,
        study_metadata: dict[str, Any] | None = None,
        grid_configuration: GridConfiguration | None = None,
        stimuli: list[Stimulus] | None = None,
    ):
        self._listeners: list[Listener] = []
        self._initialize(study_metadata, grid_configuration, stimuli)

    def _initialize(
        self,
        study_metadata: dict[str, Any] | None,
        grid_configuration: GridConfiguration | None,
        stimuli: list[Stimulus] | None,
    ) -> None:
        self.study_metadata: dict[str, Any] = {"title": "", "description": ""}
        self.study_metadata.update(study_metadata or {})
        self.grid_configuration = grid_configuration or default_grid_configuration()
        self.stimuli: list[Stimulus] = list(stimuli or [])
        self.is_dirty = False
        self.validation_errors: list[FieldError] = []

    def reset(
        self,
        study_metadata: dict[str, Any] | None = None,
        grid_configuration: GridConfiguration | None = None,
        stimuli: list[Stimulus] | None = None,
    ) -> None:
        """Discard all authoring changes and start over."""
        self._initialize(study_metadata, grid_configuration, stimuli)
        self._notify()

    # ------------------------------------------------------------------ observers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _touch(self) -> None:
        self.is_dirty = True
        self._notify()

    # ------------------------------------------------------------------ mutations

    def set_study_metadata(self, partial: dict[str, Any]) -> None:
        self.study_metadata = {**self.study_metadata, **partial}
        self._touch()

    def update_grid(self, partial: dict[str, Any]) -> None:
        """Shallow-merge grid fields; validation happens in ``validate_study``."""
        self.grid_configuration.update(partial)
        self._touch()

    def edit_grid(self, mutation: Callable[[GridConfiguration], None]) -> None:
        """Apply a grid mutation (e.g. ``lambda g: g.set_range(-4, 4)``) and mark dirty."""
        mutation(self.grid_configuration)
        self._touch()

    def add_stimulus(self, stimulus: Stimulus | dict[str, Any]) -> None:
        if not isinstance(stimulus, Stimulus):
            stimulus = Stimulus.from_dict(stimulus)
        self.stimuli.append(stimulus)
        self._touch()

    def replace_stimulus(self, stimulus: Stimulus) -> None:
        """Swap in an updated copy of a stimulus, keeping its position."""
        self.stimuli = [stimulus if s.id == stimulus.id else s for s in self.stimuli]
        self._touch()

    def remove_stimulus(self, stimulus_id: str) -> None:
        self.stimuli = [stimulus for stimulus in self.stimuli if stimulus.id != stimulus_id]
        self._touch()

    def mark_saved(self) -> None:
        self.is_dirty = False
        self._notify()

    # ------------------------------------------------------------------ validation

    @property
    def completed_stimulus_count(self) -> int:
        return sum(1 for stimulus in self.stimuli if stimulus.is_complete)

    def validate_study(self) -> bool:
        """
        Recompute ``validation_errors`` from scratch.

        Returns:
            True if the study has no validation errors
        """
        errors: list[FieldError] = []

        title = self.study_metadata.get("title") or ""
        if not str(title).strip():
            errors.append(FieldError("title", "Title is required"))

        grid_result = validate_grid_configuration(self.grid_configuration)
        if not grid_result.valid:
            errors.append(FieldError("grid", grid_result.error))

        actual = self.completed_stimulus_count
        expected = self.grid_configuration.total_cells
        if actual != expected:
            errors.append(
                FieldError(
                    "stimuli",
                    f"Stimulus count must match grid cells ({actual} vs {expected})",
                )
            )

        self.validation_errors = errors
        if errors:
            logger.debug(f"Study validation found {len(errors)} problem(s): {[e.field for e in errors]}")
        return not errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "studyMetadata": dict(self.study_metadata),
            "gridConfiguration": self.grid_configuration.to_dict(),
            "stimuli": [stimulus.to_dict() for stimulus in self.stimuli],
            "isDirty": self.is_dirty,
            "validationErrors": [error.to_dict() for error in self.validation_errors],
        }
