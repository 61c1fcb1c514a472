"""
Reporting API gateway.
"""

from .base import ReportingGateway
from .client import AgileReporterClient, RetryPolicy
from .errors import GatewayError, GatewayErrorCode

__all__ = ['AgileReporterClient', 'GatewayError', 'GatewayErrorCode', 'ReportingGateway', 'RetryPolicy']
