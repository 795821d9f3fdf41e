# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Exception hierarchy for the tenant sandbox."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from tenant_sandbox.models.analysis import AnalysisVerdict


class SandboxError(Exception):
    """Base class for errors raised by the tenant sandbox."""


class InvalidTenantError(SandboxError, ValueError):
    """The tenant identifier does not match the allowed format."""


class PathTraversalError(SandboxError, PermissionError):
    """A requested path resolves outside of the tenant root."""


class SensitiveFileError(SandboxError, PermissionError):
    """A requested path names a file that must never be read or written."""


class TenantFileNotFoundError(SandboxError, FileNotFoundError):
    """A requested file does not exist inside the tenant root."""


class ArtifactRejectedError(SandboxError):
    """Generated code was rejected by the safety analyzer.

    Attributes:
        verdict: The analysis verdict that caused the rejection.
    """

    def __init__(self, message: str, verdict: "AnalysisVerdict"):
        super().__init__(message)
        self.verdict = verdict


class CircuitBreakerError(Exception):
    """Raised when a circuit breaker refuses to attempt a call.

    Attributes:
        breaker_name: Name of the breaker that rejected the call.
        retry_after_ms: Milliseconds until the breaker will allow a probe.
    """

    def __init__(self, message: str, breaker_name: str, retry_after_ms: int):
        super().__init__(message)
        self.breaker_name = breaker_name
        self.retry_after_ms = retry_after_ms


class RunnerPreparationError(SandboxError):
    """The runner script for an execution could not be prepared."""
