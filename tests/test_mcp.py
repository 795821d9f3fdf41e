import asyncio
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from tenant_sandbox.config import SandboxConfig
from tenant_sandbox.exceptions import InvalidTenantError, TenantFileNotFoundError
from tenant_sandbox.mcp import SandboxMCP
from tenant_sandbox.sandbox import SandboxAsync


@pytest.fixture
def mcp(config: SandboxConfig) -> SandboxMCP:
    return SandboxMCP(config.model_copy(update={"git_binary": "git-binary-that-does-not-exist"}))


@pytest.mark.asyncio
async def test_write_file_initializes_tenant_once(mcp: SandboxMCP) -> None:
    with patch.object(mcp.sandbox, "init_tenant", wraps=mcp.sandbox.init_tenant) as init:
        first = await mcp.write_file("acme", "a.py", "A = 1\n")
        second = await mcp.write_file("acme", "b.py", "B = 2\n")

    assert first == {"success": True, "path": "a.py", "warnings": []}
    assert second["success"] is True
    init.assert_awaited_once_with("acme")
    assert mcp.tenants == {"acme"}
    assert (mcp.sandbox.filesystem.code_dir("acme") / "lib" / "db.py").is_file()


@pytest.mark.asyncio
async def test_concurrent_first_use_initializes_once(mcp: SandboxMCP) -> None:
    with patch.object(mcp.sandbox, "init_tenant", new_callable=AsyncMock) as init:
        await asyncio.gather(*(mcp._ensure_tenant("acme") for _ in range(5)))

    init.assert_awaited_once_with("acme")


@pytest.mark.asyncio
async def test_write_file_rejection_is_data(mcp: SandboxMCP) -> None:
    result = await mcp.write_file("acme", "evil.js", "eval(req.body.code)")

    assert result["success"] is False
    assert result["path"] == "evil.js"
    assert "code_execution" in result["error"]
    assert result["issues"][0]["severity"] == "critical"
    assert not (mcp.sandbox.filesystem.code_dir("acme") / "evil.js").exists()


@pytest.mark.asyncio
async def test_write_file_reports_warnings(mcp: SandboxMCP) -> None:
    result = await mcp.write_file("acme", "loop.py", "def handler(params):\n    print(params)\n")

    assert result["success"] is True
    assert [w["category"] for w in result["warnings"]] == ["debugging"]


@pytest.mark.asyncio
async def test_read_and_list(mcp: SandboxMCP) -> None:
    await mcp.write_file("acme", "api/users.py", "USERS = []\n")

    read = await mcp.read_file("acme", "api/users.py")
    listing = await mcp.list_files("acme")
    sub_listing = await mcp.list_files("acme", "api")

    assert read == {"path": "api/users.py", "content": "USERS = []\n"}
    assert {"name": "users.py", "type": "file", "path": "api/users.py"} in listing
    assert {"name": "api", "type": "directory", "path": "api"} in listing
    assert sub_listing == [{"name": "users.py", "type": "file", "path": "api/users.py"}]


@pytest.mark.asyncio
async def test_read_missing_file_raises(mcp: SandboxMCP) -> None:
    with pytest.raises(TenantFileNotFoundError):
        await mcp.read_file("acme", "missing.py")


@pytest.mark.asyncio
async def test_invalid_tenant_is_rejected_before_init(mcp: SandboxMCP) -> None:
    with patch.object(mcp.sandbox, "init_tenant", new_callable=AsyncMock) as init:
        with pytest.raises(InvalidTenantError):
            await mcp.write_file("../etc", "a.py", "x = 1")

    init.assert_not_called()


@pytest.mark.asyncio
async def test_analyze_code(mcp: SandboxMCP) -> None:
    result = await mcp.analyze_code("const x = eval(input);", "javascript")

    assert result["safe"] is False
    assert result["issues"][0]["category"] == "code_execution"
    assert result["metrics"]["line_count"] == 1


@pytest.mark.asyncio
async def test_execute_function(mcp: SandboxMCP) -> None:
    await mcp.write_file("acme", "add.py", "def handler(params):\n    return params['a'] + params['b']\n")

    result = await mcp.execute_function("acme", "add.py", {"a": 2, "b": 3})

    assert result["ok"] is True
    assert result["result"] == 5
    assert result["error"] is None
    assert result["error_kind"] is None
    assert result["duration"] > 0


@pytest.mark.asyncio
async def test_execute_function_error(mcp: SandboxMCP) -> None:
    await mcp.write_file("acme", "oops.py", "def handler(params):\n    return 1 / 0\n")

    result = await mcp.execute_function("acme", "oops.py")

    assert result["ok"] is False
    assert result["error_kind"] == "code_error"
    assert result["error"] == "ZeroDivisionError: division by zero"


@pytest.mark.asyncio
async def test_commit_changes_without_git(mcp: SandboxMCP) -> None:
    assert await mcp.commit_changes("acme", "initial") == {"committed": False}


def test_accepts_existing_service(config: SandboxConfig) -> None:
    service = SandboxAsync(config)
    wrapper: Any = SandboxMCP(sandbox=service)

    assert wrapper.sandbox is service
    assert wrapper.config is config
