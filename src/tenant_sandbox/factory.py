from typing import Any

from loguru import logger

from tenant_sandbox.config import SandboxConfig
from tenant_sandbox.filesystem import TenantFileSystem
from tenant_sandbox.models import ExecutionResult
from tenant_sandbox.runtime import ExecutionStrategy
from tenant_sandbox.runtimes.docker import ContainerExecutionStrategy
from tenant_sandbox.runtimes.local import LocalExecutionStrategy


class ExecutorFactory:
    """
    Factory to create ExecutionStrategy instances based on configuration.
    """

    @staticmethod
    def get_strategy(config: SandboxConfig, filesystem: TenantFileSystem | None = None) -> ExecutionStrategy:
        """
        Returns an instance of the configured ExecutionStrategy.
        """
        filesystem = filesystem or TenantFileSystem(config)

        if config.execution_mode == "local":
            return LocalExecutionStrategy(config=config, filesystem=filesystem)
        elif config.execution_mode == "container":
            return ContainerExecutionStrategy(config=config, filesystem=filesystem)
        else:
            # This should be unreachable due to Pydantic validation, but for safety:
            raise ValueError(f"Unknown execution mode: {config.execution_mode}")  # pragma: no cover


class Executor:
    """Holds the active execution strategy and forwards runs to it."""

    def __init__(self, strategy: ExecutionStrategy):
        self.strategy = strategy

    @classmethod
    def from_config(cls, config: SandboxConfig, filesystem: TenantFileSystem | None = None) -> "Executor":
        return cls(ExecutorFactory.get_strategy(config, filesystem))

    def set_strategy(self, strategy: ExecutionStrategy) -> None:
        logger.info(f"Switching execution strategy to {type(strategy).__name__}")
        self.strategy = strategy

    async def execute(self, tenant: str, entry_point: str, params: Any = None) -> ExecutionResult:
        return await self.strategy.execute(tenant, entry_point, params)
