"""
Q-sort placement reconciliation.
Checks a participant's placements against the grid capacity and the study's stimuli.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from src.logic.grid_configuration import GridConfiguration


@dataclass
class Placement:
    """A single stimulus dropped into a grid column."""

    stimulus_id: str
    column_value: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Placement":
        return cls(
            stimulus_id=str(data.get("stimulusId", data.get("stimulus_id"))),
            column_value=int(data.get("columnValue", data.get("column_value"))),
        )


@dataclass
class PlacementValidationResult:
    """Outcome of reconciling placements with the grid."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    column_counts: dict[int, int] = field(default_factory=dict)


def validate_placements(
    grid: GridConfiguration,
    stimulus_ids: Iterable[str],
    placements: Iterable[Placement | dict[str, Any]],
) -> PlacementValidationResult:
    """
    Reconcile q-sort placements with the grid.

    Every stimulus must be placed exactly once, only into existing columns,
    and no column may receive more placements than it has cells.
    """
    placements = [p if isinstance(p, Placement) else Placement.from_dict(p) for p in placements]
    expected = set(stimulus_ids)
    capacity = {column.value: column.cells for column in grid.columns}
    errors: list[str] = []

    per_stimulus = Counter(p.stimulus_id for p in placements)
    for stimulus_id, count in sorted(per_stimulus.items()):
        if stimulus_id not in expected:
            errors.append(f"Unknown stimulus {stimulus_id}")
        elif count > 1:
            errors.append(f"Stimulus {stimulus_id} placed {count} times")

    missing = sorted(expected - set(per_stimulus))
    if missing:
        errors.append(f"Stimuli not placed: {', '.join(missing)}")

    column_counts = Counter(p.column_value for p in placements)
    for value, count in sorted(column_counts.items()):
        if value not in capacity:
            errors.append(f"Column {value} does not exist in the grid")
        elif count > capacity[value]:
            errors.append(f"Column {value} holds {capacity[value]} cells but received {count} stimuli")

    return PlacementValidationResult(
        valid=not errors,
        errors=errors,
        column_counts=dict(column_counts),
    )
