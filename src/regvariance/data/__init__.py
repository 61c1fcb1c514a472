"""
Data models shared across the analysis pipeline.
"""

from .models import (
    AnalysisResult,
    Instance,
    InstanceSearchResult,
    ProgressEvent,
    ReturnConfig,
    RunConfig,
    ValidationCell,
    ValidationResult,
)

__all__ = [
    'AnalysisResult',
    'Instance',
    'InstanceSearchResult',
    'ProgressEvent',
    'ReturnConfig',
    'RunConfig',
    'ValidationCell',
    'ValidationResult',
]
