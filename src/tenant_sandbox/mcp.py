import asyncio
from typing import Any

from loguru import logger

from tenant_sandbox.config import SandboxConfig
from tenant_sandbox.exceptions import ArtifactRejectedError
from tenant_sandbox.filesystem import validate_tenant
from tenant_sandbox.sandbox import SandboxAsync


class SandboxMCP:
    """
    MCP-compliant server logic wrapper for the tenant sandbox.
    Exposes tools for the Agent.
    Initializes each tenant lazily on first use.
    """

    def __init__(self, config: SandboxConfig | None = None, sandbox: SandboxAsync | None = None):
        self.sandbox = sandbox or SandboxAsync(config)
        self.config = self.sandbox.config
        self.tenants: set[str] = set()
        self._init_lock = asyncio.Lock()

    async def _ensure_tenant(self, tenant: str) -> None:
        """
        Make sure the tenant tree exists before touching it.
        Thread-safe against concurrent initialization of the same tenant.
        """
        validate_tenant(tenant)

        # Optimistic check
        if tenant in self.tenants:
            return

        async with self._init_lock:
            # Double-check inside lock
            if tenant in self.tenants:
                return

            logger.info(f"Initializing tenant: {tenant}")
            await self.sandbox.init_tenant(tenant)
            self.tenants.add(tenant)

    async def write_file(self, tenant: str, path: str, content: str) -> dict[str, Any]:
        """
        Screen generated code and persist it if it is safe.
        A rejection is reported as data so the agent can repair the code.
        """
        await self._ensure_tenant(tenant)
        try:
            verdict = await self.sandbox.deploy(tenant, path, content)
        except ArtifactRejectedError as e:
            return {
                "success": False,
                "path": path,
                "error": str(e),
                "issues": [issue.model_dump() for issue in e.verdict.blocking_issues],
            }

        return {
            "success": True,
            "path": path,
            "warnings": [warning.model_dump() for warning in verdict.warnings],
        }

    async def read_file(self, tenant: str, path: str) -> dict[str, Any]:
        await self._ensure_tenant(tenant)
        content = await self.sandbox.read_file(tenant, path)
        return {"path": path, "content": content}

    async def list_files(self, tenant: str, directory: str = "") -> list[dict[str, str]]:
        """
        List files in the tenant code directory.
        """
        await self._ensure_tenant(tenant)
        entries = await self.sandbox.list_files(tenant, directory)
        return [entry.model_dump() for entry in entries]

    async def analyze_code(self, code: str, language: str = "javascript") -> dict[str, Any]:
        verdict = self.sandbox.analyze(code, language)
        return verdict.model_dump(mode="json")

    async def execute_function(self, tenant: str, entry_point: str, params: Any = None) -> dict[str, Any]:
        """
        Run a tenant entry point and report the outcome.
        """
        await self._ensure_tenant(tenant)
        result = await self.sandbox.execute(tenant, entry_point, params)

        return {
            "ok": result.ok,
            "result": result.result,
            "error": result.error,
            "error_kind": result.error_kind.value if result.error_kind else None,
            "log": result.log,
            "duration": result.duration,
        }

    async def commit_changes(self, tenant: str, message: str) -> dict[str, Any]:
        await self._ensure_tenant(tenant)
        committed = await self.sandbox.commit(tenant, message)
        return {"committed": committed}
