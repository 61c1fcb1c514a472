"""
Data models for the variance analysis system.
"""

from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

# Variance rows are passed through from the reporting API untouched; the
# column set depends on the form being compared.
VarianceRow = Dict[str, Any]

CELL_REFERENCE_COLUMN = 'Cell Reference'
CELL_DESCRIPTION_COLUMN = 'Cell Description'
DIFFERENCE_COLUMN = 'Difference'
PERCENT_DIFFERENCE_COLUMN = '% Difference'


@dataclass(frozen=True)
class Instance:
    """A dated snapshot of a submitted return."""
    id: str
    reference_date: str


@dataclass(frozen=True)
class ReturnConfig:
    """One requested form comparison."""
    code: str
    name: str
    expected_date: Optional[str] = None
    confirmed: bool = False


@dataclass
class RunConfig:
    """Contents of a run configuration file."""
    base_date: str
    returns: List[ReturnConfig]
    excluded: List[ReturnConfig] = field(default_factory=list)
    source: Optional[str] = None


@dataclass(frozen=True)
class InstanceSearchResult:
    """Outcome of an instance lookup, kept for logging which periods were compared."""
    instance: Instance
    search_date: str
    match_type: str
    days_difference: int


@dataclass
class ValidationCell:
    """A cell referenced by a validation rule."""
    cell: str
    value: str
    instance_id: str
    page_name: str
    form: str
    reference_date: str


@dataclass
class ValidationResult:
    """Outcome of a single business rule evaluated against an instance."""
    severity: str
    expression: str
    status: str
    message: Optional[str] = None
    referenced_cells: List[ValidationCell] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status == 'Fail'


@dataclass
class AnalysisResult:
    """Comparison of one form between its base and comparison instances."""
    form_name: str
    form_code: str
    confirmed: bool
    base_instance: Instance
    comparison_instance: Instance
    variances: List[VarianceRow] = field(default_factory=list)
    validation_errors: List[ValidationResult] = field(default_factory=list)


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted while an analysis run is in flight."""
    step: str
    current: int
    total: int
    message: str

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return (self.current / self.total) * 100
