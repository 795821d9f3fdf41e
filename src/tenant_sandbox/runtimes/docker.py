import asyncio
import time
from typing import Any

import docker
import requests
from docker.errors import DockerException
from docker.models.containers import Container
from loguru import logger

from tenant_sandbox.config import SandboxConfig
from tenant_sandbox.exceptions import RunnerPreparationError
from tenant_sandbox.filesystem import TenantFileSystem
from tenant_sandbox.models import ErrorKind, ExecutionResult
from tenant_sandbox.runner import PreparedRunner, prepare_runner
from tenant_sandbox.runtime import ExecutionStrategy, code_failure, failure, parse_output

INTERPRETERS = {"python": "python", "node": "node"}


class ContainerExecutionStrategy(ExecutionStrategy):
    """
    Docker-based implementation of the ExecutionStrategy.

    Every run gets a fresh container with no network, a memory and CPU ceiling,
    and a single read-write mount of the tenant code directory.
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        filesystem: TenantFileSystem | None = None,
        client: docker.DockerClient | None = None,
    ):
        self.config = config or SandboxConfig()
        self.filesystem = filesystem or TenantFileSystem(self.config)
        self.runtime = self.config.function_runtime
        self.image = self.config.image
        self.mem_limit = self.config.container_memory
        self.cpu_limit = self.config.container_cpus
        self.work_dir = self.config.container_workdir
        self.timeout = self.config.execution_timeout
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        # Resolved lazily so a missing daemon surfaces as a run error, not at startup
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    async def execute(self, tenant: str, entry_point: str, params: Any) -> ExecutionResult:
        """
        Run the entry point inside an ephemeral container.
        """
        start_time = time.monotonic()
        try:
            with prepare_runner(self.filesystem, tenant, entry_point, params, self.runtime) as runner:
                logger.info(f"Executing {entry_point} for tenant {tenant} in container image {self.image}")
                result = await self._run(tenant, runner)
        except RunnerPreparationError as e:
            logger.warning(f"Could not prepare run of {entry_point} for tenant {tenant}: {e}")
            result = failure(ErrorKind.SPAWN_FAILURE, str(e))

        result.duration = time.monotonic() - start_time
        return result

    def _start_container(self, tenant: str, runner: PreparedRunner) -> Container:
        container: Container = self.client.containers.run(
            self.image,
            command=[INTERPRETERS[runner.runtime], runner.runner_name],
            detach=True,
            network_mode="none",
            mem_limit=self.mem_limit,
            nano_cpus=int(self.cpu_limit * 1e9),
            volumes={str(runner.code_dir): {"bind": self.work_dir, "mode": "rw"}},
            working_dir=self.work_dir,
            environment={"TENANT_ID": tenant, "PYTHONDONTWRITEBYTECODE": "1"},
            read_only=True,
            tmpfs={"/tmp": "size=16m"},
            cap_drop=["ALL"],
            security_opt=["no-new-privileges"],
            pids_limit=64,
        )
        return container

    async def _run(self, tenant: str, runner: PreparedRunner) -> ExecutionResult:
        try:
            container = await asyncio.to_thread(self._start_container, tenant, runner)
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.error(f"Failed to start container for tenant {tenant}: {e}")
            return failure(ErrorKind.RUNTIME_UNAVAILABLE, f"Container Execution Failed: {e}")

        try:
            try:
                status = await asyncio.wait_for(asyncio.to_thread(container.wait), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Execution timed out ({self.timeout}s). Killing container {container.short_id}."
                )
                return failure(ErrorKind.TIMEOUT, f"Execution exceeded {self.timeout} seconds limit.")

            stdout_bytes = await asyncio.to_thread(container.logs, stdout=True, stderr=False)
            stderr_bytes = await asyncio.to_thread(container.logs, stdout=False, stderr=True)
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.error(f"Container execution failed for tenant {tenant}: {e}")
            return failure(ErrorKind.RUNTIME_UNAVAILABLE, f"Container Execution Failed: {e}")
        finally:
            await asyncio.to_thread(self._remove, container)

        stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
        stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""
        exit_code = int(status.get("StatusCode", -1))

        if exit_code != 0:
            logger.info(f"Container {container.short_id} for tenant {tenant} exited with code {exit_code}")
            return code_failure(exit_code, stderr)
        return parse_output(stdout, stderr)

    @staticmethod
    def _remove(container: Container) -> None:
        try:
            container.remove(force=True)
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.warning(f"Error removing container {container.short_id}: {e}")
