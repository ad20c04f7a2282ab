"""
Grid configuration logic for QSTUDY.
Holds the Q-grid entity, its structural validator and the researcher-facing mutations.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from src.exceptions import GridValidationError
from src.logic.grid_shapes import DistributionShape, GridShapeGenerator

logger = logging.getLogger(__name__)

MAX_ABS_RANGE = 6
MAX_INSTRUCTIONS_LENGTH = 500

DEFAULT_INSTRUCTIONS = "Please sort the items according to your level of agreement."

COLUMN_LABELS = {
    -6: "Strongly Disagree",
    -5: "Disagree",
    -4: "Moderately Disagree",
    -3: "Slightly Disagree",
    -2: "Somewhat Disagree",
    -1: "Mildly Disagree",
    0: "Neutral",
    1: "Mildly Agree",
    2: "Somewhat Agree",
    3: "Slightly Agree",
    4: "Moderately Agree",
    5: "Agree",
    6: "Strongly Agree",
}


def default_label(value: int) -> str:
    """Default label for a scale position."""
    return COLUMN_LABELS.get(value, f"Position {value}")


@dataclass
class GridColumn:
    """One scale position of the grid."""

    value: int
    label: str
    cells: int
    custom_label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"value": self.value, "label": self.label, "cells": self.cells}
        if self.custom_label is not None:
            data["customLabel"] = self.custom_label
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GridColumn":
        return cls(
            value=int(data["value"]),
            label=data.get("label") or default_label(int(data["value"])),
            cells=int(data["cells"]),
            custom_label=data.get("customLabel", data.get("custom_label")),
        )


@dataclass
class GridValidationResult:
    """Outcome of a structural grid validation."""

    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"valid": self.valid}
        if self.error is not None:
            result["error"] = self.error
        return result


# Wire (camelCase) names to attribute names
_WIRE_FIELDS = {
    "rangeMin": "range_min",
    "rangeMax": "range_max",
    "columns": "columns",
    "symmetry": "symmetry",
    "totalCells": "total_cells",
    "distribution": "distribution",
    "instructions": "instructions",
}


@dataclass
class GridConfiguration:
    """
    Q-grid configuration owned by a single study.

    Mutations keep ``total_cells`` equal to the column sum; they never touch
    storage. Structural rules are checked by ``validate_grid_configuration``.
    """

    range_min: int
    range_max: int
    columns: list[GridColumn]
    symmetry: bool
    total_cells: int
    distribution: DistributionShape = DistributionShape.BELL
    instructions: str | None = None
    shape_generator: GridShapeGenerator = field(
        default_factory=GridShapeGenerator, repr=False, compare=False
    )

    def __post_init__(self):
        self.distribution = DistributionShape(self.distribution)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def cell_counts(self) -> list[int]:
        return [column.cells for column in self.columns]

    @classmethod
    def from_shape(
        cls,
        range_min: int,
        range_max: int,
        total_cells: int,
        distribution: DistributionShape | str = DistributionShape.BELL,
        symmetry: bool = True,
        instructions: str | None = DEFAULT_INSTRUCTIONS,
    ) -> "GridConfiguration":
        """Create a configuration from a distribution preset."""
        _check_range(range_min, range_max)
        generator = GridShapeGenerator()
        counts = generator.generate(distribution, range_max - range_min + 1, total_cells)
        columns = [
            GridColumn(value=value, label=default_label(value), cells=cells)
            for value, cells in zip(range(range_min, range_max + 1), counts)
        ]
        return cls(
            range_min=range_min,
            range_max=range_max,
            columns=columns,
            symmetry=symmetry,
            total_cells=total_cells,
            distribution=DistributionShape(distribution),
            instructions=instructions,
            shape_generator=generator,
        )

    # ------------------------------------------------------------------ mutations

    def set_range(self, range_min: int, range_max: int, cells: list[int] | None = None) -> None:
        """
        Change the scale span and rebuild the columns.

        Args:
            range_min: New lowest scale value
            range_max: New highest scale value
            cells: Optional explicit cell counts; ``total_cells`` becomes their sum

        Raises:
            GridValidationError: If the range is invalid or ``cells`` has the wrong length
            GridShapeError: If ``total_cells`` cannot cover the new column count
        """
        _check_range(range_min, range_max)
        column_count = range_max - range_min + 1

        if cells is not None:
            if len(cells) != column_count:
                raise GridValidationError(
                    f"Expected {column_count} cell counts for range {range_min}..{range_max}, got {len(cells)}"
                )
            if any(count < 0 for count in cells):
                raise GridValidationError("Column cell counts must be non-negative")
            counts = list(cells)
        else:
            counts = self.shape_generator.generate(self.distribution, column_count, self.total_cells)

        custom_labels = {
            column.value: column.custom_label
            for column in self.columns
            if column.custom_label is not None
        }
        self.columns = [
            GridColumn(
                value=value,
                label=default_label(value),
                cells=count,
                custom_label=custom_labels.get(value),
            )
            for value, count in zip(range(range_min, range_max + 1), counts)
        ]
        self.range_min = range_min
        self.range_max = range_max
        self.total_cells = sum(counts)
        logger.debug(f"Grid range set to {range_min}..{range_max} with {self.total_cells} cells")

    def set_distribution(self, shape: DistributionShape | str) -> None:
        """Regenerate every column's cells for ``shape`` keeping column count and total."""
        shape = DistributionShape(shape)
        counts = self.shape_generator.generate(shape, self.column_count, self.total_cells)
        for column, count in zip(self.columns, counts):
            column.cells = count
        self.distribution = shape

    def set_total_cells(self, total_cells: int) -> None:
        """Redistribute a new number of cells with the current shape."""
        counts = self.shape_generator.generate(self.distribution, self.column_count, total_cells)
        for column, count in zip(self.columns, counts):
            column.cells = count
        self.total_cells = total_cells

    def toggle_symmetry(self) -> None:
        """Flip symmetry; turning it on mirrors the lower half onto the upper half."""
        self.symmetry = not self.symmetry
        if self.symmetry:
            count = self.column_count
            for index in range(count // 2):
                self.columns[count - 1 - index].cells = self.columns[index].cells
            self.total_cells = sum(self.cell_counts)

    def set_cell(self, column_value: int, cells: int) -> None:
        """Set one column's cell count, mirrored to its pair when symmetric."""
        if cells < 0:
            raise GridValidationError("Column cell counts must be non-negative")
        index = self._index_of(column_value)
        self.columns[index].cells = cells
        if self.symmetry:
            mirror = self.column_count - 1 - index
            self.columns[mirror].cells = cells
        self.total_cells = sum(self.cell_counts)

    def set_column_label(self, column_value: int, label: str | None) -> None:
        """Set or clear a column's custom label."""
        self.columns[self._index_of(column_value)].custom_label = label or None

    def set_instructions(self, instructions: str | None) -> None:
        self.instructions = instructions

    def add_column(self, position: str = "end") -> None:
        """Extend the range by one column with a single cell at either edge."""
        if position not in ("start", "end"):
            raise GridValidationError(f"Unknown column position: {position}")
        if position == "start":
            value = self.range_min - 1
            if abs(value) > MAX_ABS_RANGE:
                raise GridValidationError(f"Grid range must stay within -{MAX_ABS_RANGE} to {MAX_ABS_RANGE}")
            self.columns.insert(0, GridColumn(value=value, label=default_label(value), cells=1))
            self.range_min = value
        else:
            value = self.range_max + 1
            if abs(value) > MAX_ABS_RANGE:
                raise GridValidationError(f"Grid range must stay within -{MAX_ABS_RANGE} to {MAX_ABS_RANGE}")
            self.columns.append(GridColumn(value=value, label=default_label(value), cells=1))
            self.range_max = value
        self.total_cells = sum(self.cell_counts)

    def remove_column(self, column_value: int) -> None:
        """Drop an edge column and its cells from the grid."""
        if column_value not in (self.range_min, self.range_max):
            raise GridValidationError("Only the first or last column can be removed")
        if self.column_count <= 2:
            raise GridValidationError("A grid needs at least two columns")
        index = self._index_of(column_value)
        del self.columns[index]
        if index == 0:
            self.range_min = self.columns[0].value
        else:
            self.range_max = self.columns[-1].value
        self.total_cells = sum(self.cell_counts)

    def update(self, partial: dict[str, Any]) -> None:
        """Shallow-merge wire or attribute keys without validating."""
        for key, value in partial.items():
            attribute = _WIRE_FIELDS.get(key, key)
            if attribute not in _WIRE_FIELDS.values():
                raise GridValidationError(f"Unknown grid field: {key}")
            if attribute == "columns":
                value = [
                    column if isinstance(column, GridColumn) else GridColumn.from_dict(column)
                    for column in value
                ]
            elif attribute == "distribution":
                value = DistributionShape(value)
            setattr(self, attribute, value)

    def _index_of(self, column_value: int) -> int:
        for index, column in enumerate(self.columns):
            if column.value == column_value:
                return index
        raise GridValidationError(f"No column with value {column_value}")

    # ------------------------------------------------------------------ wire shape

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire shape; column order is ascending by value."""
        data: dict[str, Any] = {
            "rangeMin": self.range_min,
            "rangeMax": self.range_max,
            "columns": [column.to_dict() for column in self.columns],
            "symmetry": self.symmetry,
            "totalCells": self.total_cells,
            "distribution": self.distribution.value,
        }
        if self.instructions is not None:
            data["instructions"] = self.instructions
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GridConfiguration":
        return cls(
            range_min=int(data["rangeMin"]),
            range_max=int(data["rangeMax"]),
            columns=[GridColumn.from_dict(column) for column in data["columns"]],
            symmetry=bool(data["symmetry"]),
            total_cells=int(data["totalCells"]),
            distribution=DistributionShape(data.get("distribution", DistributionShape.BELL)),
            instructions=data.get("instructions"),
        )

    def copy(self) -> "GridConfiguration":
        return GridConfiguration.from_dict(self.to_dict())


def _check_range(range_min: int, range_max: int) -> None:
    error = _range_error(range_min, range_max)
    if error:
        raise GridValidationError(error)


def _range_error(range_min: int, range_max: int) -> str | None:
    if range_min >= range_max:
        return f"rangeMin ({range_min}) must be less than rangeMax ({range_max})"
    if abs(range_min) > MAX_ABS_RANGE or abs(range_max) > MAX_ABS_RANGE:
        return f"Grid range must stay within -{MAX_ABS_RANGE} to {MAX_ABS_RANGE}"
    return None


def validate_grid_configuration(config: GridConfiguration) -> GridValidationResult:
    """
    Check the structural invariants of a grid.

    Rules run in a fixed order and the first failure is returned; the
    validator never raises.
    """
    error = _range_error(config.range_min, config.range_max)
    if error:
        return GridValidationResult(valid=False, error=error)

    expected_columns = config.range_max - config.range_min + 1
    if len(config.columns) != expected_columns:
        return GridValidationResult(
            valid=False,
            error=f"Grid must have {expected_columns} columns for range "
            f"{config.range_min}..{config.range_max}, found {len(config.columns)}",
        )

    values = [column.value for column in config.columns]
    if values != list(range(config.range_min, config.range_max + 1)):
        return GridValidationResult(
            valid=False,
            error="Column values must ascend contiguously from rangeMin to rangeMax",
        )

    if any(column.cells < 0 for column in config.columns):
        return GridValidationResult(valid=False, error="Column cell counts must be non-negative")

    actual_total = sum(column.cells for column in config.columns)
    if actual_total != config.total_cells:
        return GridValidationResult(
            valid=False,
            error=f"Column cells sum to {actual_total} but totalCells is {config.total_cells}",
        )

    if config.symmetry:
        count = len(config.columns)
        for index in range(count // 2):
            left, right = config.columns[index], config.columns[count - 1 - index]
            if left.cells != right.cells:
                return GridValidationResult(
                    valid=False,
                    error=f"Symmetric grid requires column {left.value} ({left.cells} cells) "
                    f"to mirror column {right.value} ({right.cells} cells)",
                )

    if config.instructions is not None and len(config.instructions) > MAX_INSTRUCTIONS_LENGTH:
        return GridValidationResult(
            valid=False,
            error=f"Instructions must be at most {MAX_INSTRUCTIONS_LENGTH} characters",
        )

    return GridValidationResult(valid=True)


def default_grid_configuration(defaults=None) -> GridConfiguration:
    """
    Build the default grid.

    Args:
        defaults: Optional ``GridDefaultsConfig``; the global configuration is used otherwise
    """
    if defaults is None:
        from config.config import config

        defaults = config.grid_defaults

    return GridConfiguration.from_shape(
        range_min=defaults.range_min,
        range_max=defaults.range_max,
        total_cells=defaults.total_cells,
        distribution=defaults.distribution,
        symmetry=defaults.symmetry,
        instructions=defaults.instructions,
    )
