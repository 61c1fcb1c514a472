"""Persistence of analysis runs."""

from regvariance.storage.report_saver import STATUS_COMPLETED, STATUS_FAILED, ReportSaver

__all__ = ['ReportSaver', 'STATUS_COMPLETED', 'STATUS_FAILED']
