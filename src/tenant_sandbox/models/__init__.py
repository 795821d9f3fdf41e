"""
Data models for the tenant sandbox.
"""

from .analysis import AnalysisVerdict, CodeIssue, CodeMetrics, CodeWarning
from .breaker import BreakerOptions, BreakerPhase, BreakerStats
from .execution import ErrorKind, ExecutionResult
from .files import FileEntry

__all__ = [
    "AnalysisVerdict",
    "BreakerOptions",
    "BreakerPhase",
    "BreakerStats",
    "CodeIssue",
    "CodeMetrics",
    "CodeWarning",
    "ErrorKind",
    "ExecutionResult",
    "FileEntry",
]
