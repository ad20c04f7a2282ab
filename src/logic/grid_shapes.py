"""
Distribution shape generation for Q-grids.
Allocates a fixed number of cells across the grid columns for the flat, bell and forced shapes.
"""

import logging
from enum import Enum

from src.exceptions import GridShapeError

logger = logging.getLogger(__name__)


class DistributionShape(str, Enum):
    """Named distribution shapes for a Q-grid."""

    BELL = "bell"
    FLAT = "flat"
    FORCED = "forced"


class GridShapeGenerator:
    """
    Deterministic integer allocation of cells to columns.

    All shapes satisfy ``sum(result) == total_cells`` exactly. Bell and forced
    shapes reserve one cell per column and apportion the rest by largest
    remainder against integer weights, so the output is reproducible and free
    of floating point rounding.
    """

    def generate(self, shape: DistributionShape | str, column_count: int, total_cells: int) -> list[int]:
        """
        Generate cell counts for each column.

        Args:
            shape: Distribution shape (bell, flat or forced)
            column_count: Number of grid columns
            total_cells: Number of cells to distribute

        Returns:
            List of ``column_count`` non-negative counts summing to ``total_cells``

        Raises:
            GridShapeError: If the dimensions cannot produce a sensible shape
        """
        shape = DistributionShape(shape)

        if column_count < 1:
            raise GridShapeError(shape.value, column_count, total_cells, "at least one column is required")
        if total_cells < column_count:
            raise GridShapeError(
                shape.value,
                column_count,
                total_cells,
                f"total cells must be at least the column count ({column_count})",
            )

        if column_count == 1:
            return [total_cells]

        if shape == DistributionShape.FLAT:
            counts = self._flat(column_count, total_cells)
        else:
            weights = self.weights(shape, column_count)
            extra, leftover = self._apportion(weights, total_cells - column_count)
            counts = [1 + add for add in extra]
            counts = self._place_leftover(shape, counts, leftover)

        logger.debug(f"Generated {shape.value} shape for {column_count} columns: {counts}")
        return counts

    @staticmethod
    def weights(shape: DistributionShape | str, column_count: int) -> list[int]:
        """Integer apportionment weights for the bell and forced shapes."""
        shape = DistributionShape(shape)
        half = (column_count - 1) // 2
        weights = []
        for index in range(column_count):
            distance_from_edge = min(index, column_count - 1 - index)
            if shape == DistributionShape.FORCED:
                weights.append(half - distance_from_edge + 1)
            else:
                weights.append(distance_from_edge + 1)
        return weights

    @staticmethod
    def _center_index(column_count: int) -> int:
        # left-centre column for an even count
        return (column_count - 1) // 2

    def _flat(self, column_count: int, total_cells: int) -> list[int]:
        base, remainder = divmod(total_cells, column_count)
        counts = [base] * column_count
        center = self._center_index(column_count)
        odd_columns = column_count % 2 == 1

        if odd_columns and remainder % 2 == 1:
            counts[center] += 1
            remainder -= 1

        # mirrored pairs from the centre outward
        left = center - 1 if odd_columns else center
        while remainder >= 2 and left >= 0:
            counts[left] += 1
            counts[column_count - 1 - left] += 1
            remainder -= 2
            left -= 1

        # even column count with an odd remainder: one cell left, next column outward
        if remainder:
            counts[left] += remainder
        return counts

    def _apportion(self, weights: list[int], amount: int) -> tuple[list[int], int]:
        """Largest-remainder apportionment of ``amount`` over mirrored weights; returns shares and unplaced cells."""
        column_count = len(weights)
        total_weight = sum(weights)
        quotas = [amount * weight for weight in weights]
        shares = [quota // total_weight for quota in quotas]
        remainders = [quota % total_weight for quota in quotas]
        leftover = amount - sum(shares)

        center = self._center_index(column_count)
        # (remainder, distance from centre, left index, size) per mirrored unit
        units = []
        for left in range((column_count + 1) // 2):
            right = column_count - 1 - left
            size = 1 if left == right else 2
            units.append((remainders[left], center - left, left, size))
        units.sort(key=lambda unit: (-unit[0], unit[1]))

        for _, _, left, size in units:
            if leftover < size:
                continue
            shares[left] += 1
            if size == 2:
                shares[column_count - 1 - left] += 1
            leftover -= size

        return shares, leftover

    def _place_leftover(self, shape: DistributionShape, counts: list[int], leftover: int) -> list[int]:
        """Hand cells the mirrored pass could not place to the shape's peak."""
        column_count = len(counts)
        center = self._center_index(column_count)
        if shape == DistributionShape.BELL:
            counts[center] += leftover
            return counts

        # forced: a single cell can only stay symmetric on the centre column
        if column_count % 2 == 1:
            counts[center] += leftover
            leftover = 0
        counts = self._push_outward(counts)
        if leftover:
            counts[0] += leftover
        return counts

    @staticmethod
    def _push_outward(counts: list[int]) -> list[int]:
        """
        Move cells toward the edges until no column holds more than the one outside it.

        Pairs move one cell per side; the centre column of an odd count gives
        up two cells so the mirror image is kept. The centre may end up empty
        for small totals.
        """
        column_count = len(counts)
        moved = True
        while moved:
            moved = False
            for left in range(1, (column_count + 1) // 2):
                right = column_count - 1 - left
                if counts[left] <= counts[left - 1]:
                    continue
                if left == right:
                    counts[left] -= 2
                else:
                    counts[left] -= 1
                    counts[right] -= 1
                counts[left - 1] += 1
                counts[right + 1] += 1
                moved = True
        return counts


_default_generator = GridShapeGenerator()


def generate(shape: DistributionShape | str, column_count: int, total_cells: int) -> list[int]:
    """Generate cell counts with the shared generator instance."""
    return _default_generator.generate(shape, column_count, total_cells)
