"""
Instance selection for period-over-period comparison.

All functions here are pure: they only look at the instance list they are
given and never cache or mutate anything.
"""

import logging
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from regvariance.data.models import Instance, InstanceSearchResult

logger = logging.getLogger(__name__)

ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

MATCH_EXACT = 'exact'
MATCH_BEFORE = 'before'


class SelectionErrorCode(str, Enum):
    """Reasons an instance lookup can fail."""
    INVALID_DATE = 'INVALID_DATE'
    NO_INSTANCES = 'NO_INSTANCES'
    INSTANCE_NOT_FOUND = 'INSTANCE_NOT_FOUND'


class InstanceSelectionError(Exception):
    """Raised when no instance satisfies a lookup."""

    def __init__(self, message: str, code: SelectionErrorCode,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.context = context or {}


def validate_date(value: str) -> date:
    """
    Parse an ISO date string.

    Args:
        value: Date in YYYY-MM-DD format

    Returns:
        Parsed date

    Raises:
        InstanceSelectionError: If the string is not a real YYYY-MM-DD date
    """
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        raise InstanceSelectionError(
            f"Invalid date format: {value}",
            SelectionErrorCode.INVALID_DATE,
            {'date': value}
        )
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise InstanceSelectionError(
            f"Invalid date value: {value}",
            SelectionErrorCode.INVALID_DATE,
            {'date': value}
        )


def days_between(earlier: str, later: str) -> int:
    """Calendar days from `earlier` to `later` (negative if reversed)."""
    return (validate_date(later) - validate_date(earlier)).days


def _require_instances(instances: Sequence[Instance], target_date: str) -> None:
    if not instances:
        raise InstanceSelectionError(
            'No instances provided',
            SelectionErrorCode.NO_INSTANCES,
            {'target_date': target_date}
        )


def find_by_date(instances: Sequence[Instance], target_date: str) -> InstanceSearchResult:
    """
    Find the instance whose reference date equals the target date.

    Args:
        instances: Instances available for a form
        target_date: Date to match, YYYY-MM-DD

    Returns:
        Search result with match_type 'exact' and zero days difference

    Raises:
        InstanceSelectionError: NO_INSTANCES, INVALID_DATE or INSTANCE_NOT_FOUND
    """
    _require_instances(instances, target_date)
    validate_date(target_date)

    match = next((inst for inst in instances if inst.reference_date == target_date), None)
    if match is None:
        raise InstanceSelectionError(
            f"No instance found for date {target_date}",
            SelectionErrorCode.INSTANCE_NOT_FOUND,
            {
                'target_date': target_date,
                'available_dates': [inst.reference_date for inst in instances],
            }
        )

    logger.debug(f"Found exact instance match for {target_date}: {match.id}")
    return InstanceSearchResult(
        instance=match,
        search_date=target_date,
        match_type=MATCH_EXACT,
        days_difference=0,
    )


def find_before_date(instances: Sequence[Instance], target_date: str) -> InstanceSearchResult:
    """
    Find the most recent instance dated strictly before the target date.

    Instances carrying malformed dates are skipped. When several instances
    share the latest qualifying date the first one in input order wins.

    Args:
        instances: Instances available for a form
        target_date: Upper bound (exclusive), YYYY-MM-DD

    Returns:
        Search result with match_type 'before' and the calendar-day gap

    Raises:
        InstanceSelectionError: NO_INSTANCES, INVALID_DATE or INSTANCE_NOT_FOUND
    """
    _require_instances(instances, target_date)
    target = validate_date(target_date)

    best: Optional[Instance] = None
    best_date: Optional[date] = None
    for inst in instances:
        try:
            inst_date = validate_date(inst.reference_date)
        except InstanceSelectionError:
            logger.warning(f"Skipping instance {inst.id} with invalid date {inst.reference_date!r}")
            continue
        if inst_date >= target:
            continue
        if best_date is None or inst_date > best_date:
            best, best_date = inst, inst_date

    if best is None:
        raise InstanceSelectionError(
            f"No instances found before {target_date}",
            SelectionErrorCode.INSTANCE_NOT_FOUND,
            {
                'target_date': target_date,
                'available_dates': [inst.reference_date for inst in instances],
            }
        )

    days_diff = (target - best_date).days
    logger.debug(f"Found instance before {target_date}: {best.reference_date} "
                 f"({days_diff} days earlier, id {best.id})")
    return InstanceSearchResult(
        instance=best,
        search_date=target_date,
        match_type=MATCH_BEFORE,
        days_difference=days_diff,
    )


def find_by_date_or_before(instances: Sequence[Instance], target_date: str) -> InstanceSearchResult:
    """Exact match on the target date, falling back to the closest earlier instance."""
    try:
        return find_by_date(instances, target_date)
    except InstanceSelectionError as e:
        if e.code != SelectionErrorCode.INSTANCE_NOT_FOUND:
            raise
        logger.debug(f"Exact match not found for {target_date}, searching earlier instances")
    return find_before_date(instances, target_date)


def sort_instances_by_date(instances: Sequence[Instance], descending: bool = False) -> List[Instance]:
    """Return a new list ordered by reference date."""
    return sorted(instances, key=lambda inst: inst.reference_date, reverse=descending)


def group_instances_by_year(instances: Sequence[Instance]) -> Dict[int, List[Instance]]:
    """Group instances by the year of their reference date."""
    groups: Dict[int, List[Instance]] = {}
    for inst in instances:
        year = validate_date(inst.reference_date).year
        groups.setdefault(year, []).append(inst)
    return groups


def get_unique_dates(instances: Sequence[Instance]) -> List[str]:
    """Sorted distinct reference dates."""
    return sorted({inst.reference_date for inst in instances})
