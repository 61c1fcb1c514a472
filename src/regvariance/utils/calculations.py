"""
Variance counting and statistics over variance rows.
"""

import math
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import numpy as np

from regvariance.data.models import CELL_REFERENCE_COLUMN, DIFFERENCE_COLUMN, VarianceRow

SUBTOTAL_KEYWORDS = ('subtotal', 'total', 'sum')


@dataclass(frozen=True)
class VarianceStatistics:
    """Summary of the differences found in one form."""
    total_count: int
    non_zero_count: int
    subtotal_count: int
    meaningful_count: int
    max_abs_value: float
    avg_abs_value: float


def to_number(value: Any) -> Optional[float]:
    """
    Convert a difference value to a float.

    Args:
        value: Number or numeric string from the API

    Returns:
        The float value, or None for blanks and non-numeric strings
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        try:
            number = float(value.strip().replace(',', ''))
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def is_meaningful_difference(value: Any) -> bool:
    """True for a non-blank, non-zero numeric difference."""
    number = to_number(value)
    return number is not None and number != 0


def is_subtotal_cell(cell_reference: Any) -> bool:
    """True when the cell reference marks a subtotal or total row."""
    if not isinstance(cell_reference, str):
        return False
    lowered = cell_reference.lower()
    return any(keyword in lowered for keyword in SUBTOTAL_KEYWORDS)


def count_meaningful_differences(rows: Sequence[VarianceRow],
                                 diff_column: str = DIFFERENCE_COLUMN,
                                 cell_ref_column: str = CELL_REFERENCE_COLUMN) -> int:
    """
    Count rows with a real difference, ignoring subtotal rows.

    Args:
        rows: Variance rows for one form
        diff_column: Column holding the difference
        cell_ref_column: Column holding the cell reference

    Returns:
        Number of meaningful, non-subtotal differences
    """
    return sum(
        1 for row in rows
        if is_meaningful_difference(row.get(diff_column))
        and not is_subtotal_cell(row.get(cell_ref_column))
    )


def has_meaningful_differences(rows: Sequence[VarianceRow],
                               diff_column: str = DIFFERENCE_COLUMN) -> bool:
    return count_meaningful_differences(rows, diff_column) > 0


def calculate_variance_statistics(rows: Sequence[VarianceRow],
                                  diff_column: str = DIFFERENCE_COLUMN,
                                  cell_ref_column: str = CELL_REFERENCE_COLUMN) -> VarianceStatistics:
    """
    Calculate difference statistics for a set of variance rows.

    Args:
        rows: Variance rows for one form
        diff_column: Column holding the difference
        cell_ref_column: Column holding the cell reference

    Returns:
        Counts plus the largest and mean absolute difference
    """
    subtotal_count = 0
    meaningful_count = 0
    abs_values: List[float] = []

    for row in rows:
        subtotal = is_subtotal_cell(row.get(cell_ref_column))
        if subtotal:
            subtotal_count += 1

        number = to_number(row.get(diff_column))
        if number is None or number == 0:
            continue
        abs_values.append(abs(number))
        if not subtotal:
            meaningful_count += 1

    values = np.array(abs_values, dtype=float)
    return VarianceStatistics(
        total_count=len(rows),
        non_zero_count=len(abs_values),
        subtotal_count=subtotal_count,
        meaningful_count=meaningful_count,
        max_abs_value=float(values.max()) if values.size else 0.0,
        avg_abs_value=float(values.mean()) if values.size else 0.0,
    )


def filter_variances(rows: Sequence[VarianceRow], min_abs_value: float = 0.0,
                     exclude_subtotals: bool = False,
                     diff_column: str = DIFFERENCE_COLUMN,
                     cell_ref_column: str = CELL_REFERENCE_COLUMN) -> List[VarianceRow]:
    """
    Keep rows with a meaningful difference of at least `min_abs_value`.

    Args:
        rows: Variance rows to filter
        min_abs_value: Minimum absolute difference to keep
        exclude_subtotals: Drop subtotal rows as well
        diff_column: Column holding the difference
        cell_ref_column: Column holding the cell reference

    Returns:
        New list of matching rows in their original order
    """
    filtered = []
    for row in rows:
        number = to_number(row.get(diff_column))
        if number is None or number == 0:
            continue
        if exclude_subtotals and is_subtotal_cell(row.get(cell_ref_column)):
            continue
        if abs(number) < min_abs_value:
            continue
        filtered.append(row)
    return filtered
