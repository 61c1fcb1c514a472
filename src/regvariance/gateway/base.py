"""
Interface the analyzer uses to reach the reporting API.
"""

from abc import ABC, abstractmethod
from typing import List

from regvariance.data.models import Instance, ValidationResult, VarianceRow


class ReportingGateway(ABC):
    """
    Remote source of return instances, cell variances and validation results.

    Implementations raise GatewayError on any failure.
    """

    @abstractmethod
    async def list_instances(self, form_code: str) -> List[Instance]:
        """All submitted instances of a form."""

    @abstractmethod
    async def compare_instances(self, form_code: str, from_instance: Instance,
                                to_instance: Instance) -> List[VarianceRow]:
        """Cell-level variances between two instances of a form."""

    @abstractmethod
    async def validate(self, instance: Instance) -> List[ValidationResult]:
        """Evaluate the business rules of an instance."""
