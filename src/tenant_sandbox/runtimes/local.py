import asyncio
import os
import sys
import time
from typing import Any

from loguru import logger

from tenant_sandbox.config import SandboxConfig
from tenant_sandbox.exceptions import RunnerPreparationError
from tenant_sandbox.filesystem import TenantFileSystem
from tenant_sandbox.models import ErrorKind, ExecutionResult
from tenant_sandbox.runner import PreparedRunner, prepare_runner
from tenant_sandbox.runtime import ExecutionStrategy, code_failure, failure, parse_output


class LocalExecutionStrategy(ExecutionStrategy):
    """
    Runs tenant code as a child process on the host.

    This isolates the platform from crashes of the generated code but not from
    anything the code deliberately does; use the container strategy for that.
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        filesystem: TenantFileSystem | None = None,
    ):
        self.config = config or SandboxConfig()
        self.filesystem = filesystem or TenantFileSystem(self.config)
        self.runtime = self.config.function_runtime
        self.timeout = self.config.execution_timeout

    def _command(self, runner: PreparedRunner) -> list[str]:
        interpreter = self.config.node_binary if runner.runtime == "node" else sys.executable
        return [interpreter, str(runner.runner_path)]

    async def execute(self, tenant: str, entry_point: str, params: Any) -> ExecutionResult:
        """
        Spawn the runner and capture its output.
        """
        start_time = time.monotonic()
        try:
            with prepare_runner(self.filesystem, tenant, entry_point, params, self.runtime) as runner:
                logger.info(f"Executing {entry_point} for tenant {tenant} locally")
                result = await self._spawn(tenant, runner)
        except RunnerPreparationError as e:
            logger.warning(f"Could not prepare run of {entry_point} for tenant {tenant}: {e}")
            result = failure(ErrorKind.SPAWN_FAILURE, str(e))

        result.duration = time.monotonic() - start_time
        return result

    async def _spawn(self, tenant: str, runner: PreparedRunner) -> ExecutionResult:
        env = {
            **os.environ,
            "TENANT_ID": tenant,
            "TENANT_DB_PATH": str(self.filesystem.database_path(tenant)),
            "PYTHONDONTWRITEBYTECODE": "1",
        }
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command(runner),
                cwd=runner.code_dir,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to spawn runner for tenant {tenant}: {e}")
            return failure(ErrorKind.SPAWN_FAILURE, f"Failed to start process: {e}")

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Execution for tenant {tenant} exceeded {self.timeout}s. Killing process {process.pid}.")
            await _kill(process)
            return failure(ErrorKind.TIMEOUT, f"Execution exceeded {self.timeout} seconds limit.")
        except asyncio.CancelledError:
            await _kill(process)
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        if process.returncode != 0:
            logger.info(f"Runner for tenant {tenant} exited with code {process.returncode}")
            return code_failure(process.returncode or -1, stderr)
        return parse_output(stdout, stderr)


async def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()
