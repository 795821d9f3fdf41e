# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import json
from abc import ABC, abstractmethod
from typing import Any

from tenant_sandbox.models import ErrorKind, ExecutionResult
from tenant_sandbox.utils.text import last_meaningful_line, sanitize_error


class ExecutionStrategy(ABC):
    """
    Abstract base class for execution backends (e.g., local process, container).
    Follows the Strategy Pattern.
    """

    @abstractmethod
    async def execute(self, tenant: str, entry_point: str, params: Any) -> ExecutionResult:
        """Run a tenant entry point out of process.

        Failures of the candidate code are returned as data, never raised.

        Args:
            tenant: The tenant that owns the code.
            entry_point: Entry module, relative to the tenant code directory.
            params: JSON-serializable value handed to the entry point.

        Returns:
            ExecutionResult: The decoded result, or an error with its category.

        Raises:
            InvalidTenantError: If the tenant id is malformed.
            PathTraversalError: If the entry point escapes the tenant code directory.
        """
        pass  # pragma: no cover


def parse_output(stdout: str, stderr: str) -> ExecutionResult:
    """Turns the streams of a successful run into an ExecutionResult."""
    output = stdout.strip()
    log = stderr or None
    try:
        return ExecutionResult(result=json.loads(output), log=log)
    except ValueError:
        return ExecutionResult(result=output, log=log)


def failure(kind: ErrorKind, message: str, log: str | None = None) -> ExecutionResult:
    return ExecutionResult(error=sanitize_error(message), error_kind=kind, log=log or None)


def code_failure(returncode: int, stderr: str) -> ExecutionResult:
    message = last_meaningful_line(stderr) or f"Process exited with code {returncode}"
    return failure(ErrorKind.CODE_ERROR, message, stderr)
