# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
tenant-sandbox
"""

__version__ = "0.1.0"

from .analyzer import analyze, quick_safety_check, sanitize_code
from .circuit_breaker import BreakerRegistry, CircuitBreaker, create_circuit_breaker, with_circuit_breaker
from .config import SandboxConfig
from .exceptions import (
    ArtifactRejectedError,
    CircuitBreakerError,
    InvalidTenantError,
    PathTraversalError,
    SandboxError,
    SensitiveFileError,
    TenantFileNotFoundError,
)
from .factory import Executor, ExecutorFactory
from .filesystem import TenantFileSystem
from .models import AnalysisVerdict, BreakerPhase, ExecutionResult, FileEntry
from .runtime import ExecutionStrategy
from .runtimes import ContainerExecutionStrategy, LocalExecutionStrategy
from .sandbox import Sandbox, SandboxAsync

__all__ = [
    "AnalysisVerdict",
    "ArtifactRejectedError",
    "BreakerPhase",
    "BreakerRegistry",
    "CircuitBreaker",
    "CircuitBreakerError",
    "ContainerExecutionStrategy",
    "ExecutionResult",
    "ExecutionStrategy",
    "Executor",
    "ExecutorFactory",
    "FileEntry",
    "InvalidTenantError",
    "LocalExecutionStrategy",
    "PathTraversalError",
    "Sandbox",
    "SandboxAsync",
    "SandboxConfig",
    "SandboxError",
    "SensitiveFileError",
    "TenantFileNotFoundError",
    "TenantFileSystem",
    "analyze",
    "create_circuit_breaker",
    "quick_safety_check",
    "sanitize_code",
    "with_circuit_breaker",
]
