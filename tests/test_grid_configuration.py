"""
Tests for the grid configuration entity, its mutations and the structural validator.
"""

import pytest

from src.exceptions import GridShapeError, GridValidationError
from src.logic.grid_configuration import (
    DEFAULT_INSTRUCTIONS,
    GridColumn,
    GridConfiguration,
    default_label,
    validate_grid_configuration,
)
from src.logic.grid_shapes import DistributionShape


def make_grid(cells, range_min=None, symmetry=True, total=None, instructions=None):
    """Build a grid directly from cell counts, bypassing the shape generator."""
    count = len(cells)
    range_min = -(count // 2) if range_min is None else range_min
    columns = [
        GridColumn(value=range_min + i, label=default_label(range_min + i), cells=c)
        for i, c in enumerate(cells)
    ]
    return GridConfiguration(
        range_min=range_min,
        range_max=range_min + count - 1,
        columns=columns,
        symmetry=symmetry,
        total_cells=sum(cells) if total is None else total,
        instructions=instructions,
    )


class TestDefaultGrid:
    """Default configuration."""

    def test_default_grid(self, default_grid):
        assert default_grid.range_min == -3
        assert default_grid.range_max == 3
        assert default_grid.cell_counts == [1, 2, 3, 4, 3, 2, 1]
        assert default_grid.total_cells == 16
        assert default_grid.symmetry is True
        assert default_grid.distribution == DistributionShape.BELL
        assert default_grid.instructions == DEFAULT_INSTRUCTIONS

    def test_default_grid_is_valid(self, default_grid):
        assert validate_grid_configuration(default_grid).valid

    def test_default_labels(self, default_grid):
        assert [c.label for c in default_grid.columns][3] == "Neutral"
        assert default_grid.columns[0].label == "Slightly Disagree"
        assert default_label(9) == "Position 9"


class TestValidator:
    """Structural validation rules, checked in order."""

    def test_range_min_must_be_below_max(self):
        grid = make_grid([1, 2, 1])
        grid.range_min, grid.range_max = 2, 2
        result = validate_grid_configuration(grid)
        assert not result.valid
        assert "less than" in result.error

    def test_range_bounded_by_six(self):
        grid = make_grid([1] * 15, range_min=-7)
        result = validate_grid_configuration(grid)
        assert not result.valid
        assert "-6 to 6" in result.error

    def test_column_count_must_match_range(self):
        grid = make_grid([1, 2, 3, 2, 1])
        grid.range_max = 3
        result = validate_grid_configuration(grid)
        assert not result.valid
        assert "columns" in result.error

    def test_column_values_must_be_contiguous(self):
        grid = make_grid([1, 2, 1])
        grid.columns[1].value = 5
        result = validate_grid_configuration(grid)
        assert result.error == "Column values must ascend contiguously from rangeMin to rangeMax"

    def test_negative_cells_rejected(self):
        grid = make_grid([1, -1, 1], symmetry=False)
        result = validate_grid_configuration(grid)
        assert result.error == "Column cell counts must be non-negative"

    def test_sum_must_equal_total(self):
        grid = make_grid([1, 2, 3, 2, 1], total=10)
        result = validate_grid_configuration(grid)
        assert result.error == "Column cells sum to 9 but totalCells is 10"

    def test_symmetry_enforced(self):
        grid = make_grid([1, 2, 3, 3, 1])
        result = validate_grid_configuration(grid)
        assert not result.valid
        assert "mirror" in result.error

    def test_asymmetric_grid_valid_without_symmetry(self):
        grid = make_grid([1, 2, 3, 3, 1], symmetry=False)
        assert validate_grid_configuration(grid).valid

    def test_instructions_length(self):
        grid = make_grid([1, 2, 1], instructions="x" * 501)
        result = validate_grid_configuration(grid)
        assert result.error == "Instructions must be at most 500 characters"
        grid.instructions = "x" * 500
        assert validate_grid_configuration(grid).valid

    def test_first_failing_rule_wins(self):
        grid = make_grid([1, 2, 3, 3, 1], total=99)
        # the sum rule runs before the symmetry rule
        assert validate_grid_configuration(grid).error.startswith("Column cells sum")

    def test_validator_never_raises(self):
        grid = make_grid([])
        result = validate_grid_configuration(grid)
        assert not result.valid
        assert result.to_dict()["valid"] is False


class TestSetRange:
    """Range changes."""

    def test_scenario_expand_range(self, default_grid):
        default_grid.set_range(-4, 4)
        assert default_grid.column_count == 9
        assert sum(default_grid.cell_counts) == 16
        assert default_grid.total_cells == 16
        assert validate_grid_configuration(default_grid).valid

    def test_explicit_cells_set_total(self, default_grid):
        default_grid.set_range(-2, 2, cells=[2, 3, 4, 3, 2])
        assert default_grid.cell_counts == [2, 3, 4, 3, 2]
        assert default_grid.total_cells == 14

    def test_wrong_cell_count_length(self, default_grid):
        with pytest.raises(GridValidationError):
            default_grid.set_range(-2, 2, cells=[1, 2, 1])

    @pytest.mark.parametrize("range_min,range_max", [(3, 3), (2, -2), (-7, 3), (-3, 7)])
    def test_invalid_range_rejected(self, default_grid, range_min, range_max):
        with pytest.raises(GridValidationError):
            default_grid.set_range(range_min, range_max)
        assert default_grid.range_min == -3

    def test_too_many_columns_for_cells(self):
        grid = GridConfiguration.from_shape(-2, 2, total_cells=6)
        with pytest.raises(GridShapeError):
            grid.set_range(-5, 5)

    def test_custom_labels_survive(self, default_grid):
        default_grid.set_column_label(0, "Unsure")
        default_grid.set_column_label(-3, "Nope")
        default_grid.set_range(-2, 2)
        assert default_grid.columns[2].custom_label == "Unsure"
        assert all(c.custom_label != "Nope" for c in default_grid.columns)


class TestDistributionAndSymmetry:
    """Shape changes, symmetry toggling and single-cell edits."""

    def test_set_distribution_is_idempotent(self, default_grid):
        default_grid.set_distribution("flat")
        first = default_grid.cell_counts
        default_grid.set_distribution("flat")
        assert default_grid.cell_counts == first
        assert default_grid.distribution == DistributionShape.FLAT
        assert sum(first) == 16

    def test_set_total_cells_redistributes(self, default_grid):
        default_grid.set_total_cells(20)
        assert default_grid.total_cells == 20
        assert sum(default_grid.cell_counts) == 20

    def test_toggle_symmetry_mirrors_lower_half(self):
        grid = make_grid([1, 2, 3, 4, 5], symmetry=False)
        grid.toggle_symmetry()
        assert grid.symmetry is True
        assert grid.cell_counts == [1, 2, 3, 2, 1]
        assert grid.total_cells == 9

    def test_toggle_symmetry_off_keeps_counts(self, default_grid):
        default_grid.toggle_symmetry()
        assert default_grid.symmetry is False
        assert default_grid.cell_counts == [1, 2, 3, 4, 3, 2, 1]

    def test_set_cell_mirrors_when_symmetric(self, default_grid):
        default_grid.set_cell(-2, 5)
        assert default_grid.cell_counts == [1, 5, 3, 4, 3, 5, 1]
        assert default_grid.total_cells == 22
        assert validate_grid_configuration(default_grid).valid

    def test_set_cell_without_symmetry(self, default_grid):
        default_grid.toggle_symmetry()
        default_grid.set_cell(3, 0)
        assert default_grid.cell_counts == [1, 2, 3, 4, 3, 2, 0]
        assert default_grid.total_cells == 15

    def test_set_cell_rejects_negative(self, default_grid):
        with pytest.raises(GridValidationError):
            default_grid.set_cell(0, -1)

    def test_set_cell_rejects_unknown_column(self, default_grid):
        with pytest.raises(GridValidationError):
            default_grid.set_cell(6, 2)


class TestColumnEditing:
    """Adding and removing edge columns."""

    def test_add_column_at_end(self, default_grid):
        default_grid.add_column("end")
        assert default_grid.range_max == 4
        assert default_grid.columns[-1].cells == 1
        assert default_grid.total_cells == 17

    def test_add_column_at_start(self, default_grid):
        default_grid.add_column("start")
        assert default_grid.range_min == -4
        assert default_grid.columns[0].label == "Moderately Disagree"

    def test_add_column_beyond_limit(self):
        grid = GridConfiguration.from_shape(-6, 6, total_cells=40)
        with pytest.raises(GridValidationError):
            grid.add_column("end")

    def test_remove_edge_column(self, default_grid):
        default_grid.remove_column(3)
        assert default_grid.range_max == 2
        assert default_grid.total_cells == 15

    def test_remove_inner_column_rejected(self, default_grid):
        with pytest.raises(GridValidationError):
            default_grid.remove_column(0)

    def test_keep_two_columns(self):
        grid = GridConfiguration.from_shape(0, 1, total_cells=4)
        with pytest.raises(GridValidationError):
            grid.remove_column(1)


class TestWireShape:
    """camelCase serialization and partial updates."""

    def test_to_dict_uses_camel_case(self, default_grid):
        default_grid.set_column_label(1, "Kind of")
        data = default_grid.to_dict()
        assert data["rangeMin"] == -3
        assert data["totalCells"] == 16
        assert data["distribution"] == "bell"
        assert data["columns"][4]["customLabel"] == "Kind of"
        assert "customLabel" not in data["columns"][0]

    def test_cleared_instructions_omitted(self, default_grid):
        default_grid.set_instructions(None)
        assert "instructions" not in default_grid.to_dict()

    def test_from_dict_restores_equal_grid(self, default_grid):
        assert GridConfiguration.from_dict(default_grid.to_dict()) == default_grid

    def test_copy_is_independent(self, default_grid):
        clone = default_grid.copy()
        clone.set_cell(0, 10)
        assert default_grid.columns[3].cells == 4

    def test_update_accepts_wire_keys(self, default_grid):
        default_grid.update({"totalCells": 20, "instructions": "Sort quickly"})
        assert default_grid.total_cells == 20
        assert default_grid.instructions == "Sort quickly"
        # no validation on update
        assert not validate_grid_configuration(default_grid).valid

    def test_update_rejects_unknown_keys(self, default_grid):
        with pytest.raises(GridValidationError):
            default_grid.update({"colour": "red"})
