"""
Instance selection and variance analysis orchestration.
"""

from .instance_selector import (
    InstanceSelectionError,
    SelectionErrorCode,
    find_before_date,
    find_by_date,
    find_by_date_or_before,
)
from .progress import ProgressEmitter
from .variance_analyzer import VarianceAnalyzer

__all__ = [
    'InstanceSelectionError',
    'ProgressEmitter',
    'SelectionErrorCode',
    'VarianceAnalyzer',
    'find_before_date',
    'find_by_date',
    'find_by_date_or_before',
]
