# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from collections.abc import Awaitable, Callable
from pathlib import Path, PurePosixPath
from typing import Any, TypeVar

import anyio
from loguru import logger

from tenant_sandbox.analyzer import analyze
from tenant_sandbox.circuit_breaker import BreakerRegistry
from tenant_sandbox.config import SandboxConfig
from tenant_sandbox.exceptions import ArtifactRejectedError
from tenant_sandbox.factory import Executor
from tenant_sandbox.filesystem import TenantFileSystem
from tenant_sandbox.models import AnalysisVerdict, BreakerStats, ExecutionResult, FileEntry

T = TypeVar("T")

EXTENSION_LANGUAGES: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".cjs": "javascript",
    ".mjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
}


class SandboxAsync:
    """Async-native tenant sandbox service (The Core).

    Ties the path sandbox, the safety analyzer, the execution engine and the
    circuit breakers together: analyze, persist, commit, execute.
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        filesystem: TenantFileSystem | None = None,
        executor: Executor | None = None,
        breakers: BreakerRegistry | None = None,
    ):
        """Initializes the SandboxAsync service.

        Args:
            config: Configuration for the sandbox.
            filesystem: Optional tenant filesystem; built from ``config`` if omitted.
            executor: Optional executor; the configured strategy is used if omitted.
            breakers: Optional breaker registry shared with other services.
        """
        self.config = config or SandboxConfig()
        self.filesystem = filesystem or TenantFileSystem(self.config)
        self.executor = executor or Executor.from_config(self.config, self.filesystem)
        self.breakers = breakers or BreakerRegistry()

    def language_for(self, path: str) -> str:
        """Guesses the analyzer language from a file extension."""
        suffix = PurePosixPath(path).suffix.lower()
        default = "python" if self.config.function_runtime == "python" else "javascript"
        return EXTENSION_LANGUAGES.get(suffix, default)

    async def init_tenant(self, tenant: str) -> Path:
        """Creates the tenant tree and repository.

        Args:
            tenant: The tenant identifier.

        Returns:
            Path: The tenant code directory.
        """
        return await self.filesystem.init_tenant(tenant)

    async def read_file(self, tenant: str, path: str) -> str:
        return await self.filesystem.read_file(tenant, path)

    async def write_file(self, tenant: str, path: str, content: str) -> Path:
        """Writes a file without screening it. Use ``deploy`` for generated code."""
        return await self.filesystem.write_file(tenant, path, content)

    async def delete_file(self, tenant: str, path: str) -> None:
        await self.filesystem.delete_file(tenant, path)

    async def list_files(self, tenant: str, directory: str = "", recursive: bool = True) -> list[FileEntry]:
        return await anyio.to_thread.run_sync(self.filesystem.list_files, tenant, directory, recursive)

    async def commit(self, tenant: str, message: str) -> bool:
        return await self.filesystem.commit(tenant, message)

    def analyze(self, code: str, language: str | None = None) -> AnalysisVerdict:
        """Screens code with the configured size limit."""
        return analyze(code, language or "javascript", max_size=self.config.max_code_size)

    async def deploy(
        self,
        tenant: str,
        path: str,
        code: str,
        language: str | None = None,
        commit_message: str | None = None,
    ) -> AnalysisVerdict:
        """Analyzes generated code and persists it only if it is safe.

        Args:
            tenant: The tenant identifier.
            path: Destination, relative to the tenant code directory.
            code: The generated source.
            language: Analyzer language; guessed from ``path`` if omitted.
            commit_message: If given, the change is committed afterwards.

        Returns:
            AnalysisVerdict: The verdict of the accepted artifact (warnings included).

        Raises:
            ArtifactRejectedError: If the analyzer found a critical or high issue.
                Nothing is written in that case.
        """
        verdict = self.analyze(code, language or self.language_for(path))
        if not verdict.safe:
            categories = sorted({issue.category for issue in verdict.blocking_issues})
            logger.warning(f"Rejected artifact {path} for tenant {tenant}: {', '.join(categories)}")
            raise ArtifactRejectedError(f"Code rejected by safety analysis: {', '.join(categories)}", verdict)

        await self.filesystem.write_file(tenant, path, code)
        if commit_message:
            await self.filesystem.commit(tenant, commit_message)
        return verdict

    async def execute(self, tenant: str, entry_point: str, params: Any = None) -> ExecutionResult:
        """Runs a tenant entry point with the active execution strategy.

        Args:
            tenant: The tenant identifier.
            entry_point: Entry module, relative to the tenant code directory.
            params: JSON-serializable value handed to the entry point.

        Returns:
            ExecutionResult: The result of the execution.
        """
        logger.info(f"Executing {entry_point} for tenant {tenant}")
        return await self.executor.execute(tenant, entry_point, params)

    async def call_with_breaker(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Calls an upstream dependency through the named circuit breaker.

        Raises:
            CircuitBreakerError: If the breaker refuses the call.
        """
        return await self.breakers.get_or_create(name).execute(operation)

    def breaker_stats(self) -> list[BreakerStats]:
        return self.breakers.stats()


class Sandbox:
    """Sync Facade for SandboxAsync (The Facade).

    Wraps SandboxAsync and executes methods via anyio.run.
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        filesystem: TenantFileSystem | None = None,
        executor: Executor | None = None,
        breakers: BreakerRegistry | None = None,
    ):
        self._async = SandboxAsync(config, filesystem, executor, breakers)

    @property
    def config(self) -> SandboxConfig:
        return self._async.config

    def init_tenant(self, tenant: str) -> Path:
        return anyio.run(self._async.init_tenant, tenant)

    def read_file(self, tenant: str, path: str) -> str:
        return anyio.run(self._async.read_file, tenant, path)

    def write_file(self, tenant: str, path: str, content: str) -> Path:
        return anyio.run(self._async.write_file, tenant, path, content)

    def delete_file(self, tenant: str, path: str) -> None:
        anyio.run(self._async.delete_file, tenant, path)

    def list_files(self, tenant: str, directory: str = "", recursive: bool = True) -> list[FileEntry]:
        return self._async.filesystem.list_files(tenant, directory, recursive)

    def commit(self, tenant: str, message: str) -> bool:
        return anyio.run(self._async.commit, tenant, message)

    def analyze(self, code: str, language: str | None = None) -> AnalysisVerdict:
        return self._async.analyze(code, language)

    def deploy(
        self,
        tenant: str,
        path: str,
        code: str,
        language: str | None = None,
        commit_message: str | None = None,
    ) -> AnalysisVerdict:
        """Analyzes and persists generated code synchronously.

        Raises:
            ArtifactRejectedError: If the analyzer found a critical or high issue.
        """
        return anyio.run(self._async.deploy, tenant, path, code, language, commit_message)

    def execute(self, tenant: str, entry_point: str, params: Any = None) -> ExecutionResult:
        """Runs a tenant entry point synchronously.

        Args:
            tenant: The tenant identifier.
            entry_point: Entry module, relative to the tenant code directory.
            params: JSON-serializable value handed to the entry point.

        Returns:
            ExecutionResult: The result of the execution.
        """
        return anyio.run(self._async.execute, tenant, entry_point, params)
