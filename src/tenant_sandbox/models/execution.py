# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Why an execution did not produce a result."""

    SPAWN_FAILURE = "spawn_failure"
    RUNTIME_UNAVAILABLE = "runtime_unavailable"
    CODE_ERROR = "code_error"
    TIMEOUT = "timeout"


class ExecutionResult(BaseModel):
    """Represents the outcome of running a tenant entry point.

    Exactly one of ``result`` or ``error`` is authoritative. ``log`` carries the
    captured diagnostic stream and may accompany either.

    Attributes:
        result: The decoded return value of the entry point, or raw stdout.
        log: Captured standard error of the run.
        error: A sanitized, human readable error message.
        error_kind: The category of ``error``.
        duration: Wall-clock duration of the run in seconds.
    """

    result: Any = None
    log: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    duration: float = Field(default=0.0, ge=0.0)

    @property
    def ok(self) -> bool:
        return self.error is None
