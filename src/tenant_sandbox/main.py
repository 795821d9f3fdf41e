# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import json
from typing import Any, cast

from mcp.server.fastmcp import FastMCP
from mcp.types import TextContent

from tenant_sandbox.mcp import SandboxMCP
from tenant_sandbox.utils.logger import logger

# Initialize Sandbox Logic
sandbox = SandboxMCP()

# Initialize MCP Server
mcp = FastMCP("tenant-sandbox")


@mcp.tool()  # type: ignore[misc]
async def write_file(tenant: str, path: str, content: str) -> str:
    """
    Write generated code into the tenant code directory.
    The code is screened first and rejected if it contains dangerous constructs.
    """
    try:
        result = await sandbox.write_file(tenant, path, content)
    except Exception as e:
        return f"Error writing file: {e!s}"

    if not result["success"]:
        issues = cast(list[dict[str, Any]], result["issues"])
        lines = [f"Rejected {path}: {result['error']}"]
        lines += [f"- line {i.get('line') or '?'}: [{i['severity']}] {i['message']}" for i in issues]
        return "\n".join(lines)

    warnings = cast(list[dict[str, Any]], result["warnings"])
    return f"Wrote {path} ({len(warnings)} warnings)"


@mcp.tool()  # type: ignore[misc]
async def read_file(tenant: str, path: str) -> str:
    """
    Read a file from the tenant code directory.
    """
    try:
        result = await sandbox.read_file(tenant, path)
    except Exception as e:
        return f"Error reading file: {e!s}"
    return cast(str, result["content"])


@mcp.tool()  # type: ignore[misc]
async def list_files(tenant: str, directory: str = "") -> list[str]:
    """
    List files in the tenant code directory.
    """
    try:
        entries = await sandbox.list_files(tenant, directory)
    except Exception as e:
        return [f"Error listing files: {e!s}"]
    return [entry["path"] + ("/" if entry["type"] == "directory" else "") for entry in entries]


@mcp.tool()  # type: ignore[misc]
async def analyze_code(code: str, language: str = "javascript") -> str:
    """
    Screen code for dangerous constructs without saving it.
    """
    try:
        verdict = await sandbox.analyze_code(code, language)
    except Exception as e:
        return f"Error analyzing code: {e!s}"
    return json.dumps(verdict, indent=2)


@mcp.tool()  # type: ignore[misc]
async def execute_function(tenant: str, entry_point: str, params: Any = None) -> list[TextContent]:
    """
    Execute a tenant function in the sandbox.
    Returns the result or the error, plus the captured log.
    """
    try:
        result = await sandbox.execute_function(tenant, entry_point, params)
    except Exception as e:
        return [TextContent(type="text", text=f"Error executing function: {e!s}")]

    output: list[TextContent] = []

    if result["ok"]:
        output.append(TextContent(type="text", text=f"RESULT:\n{json.dumps(result['result'], default=str)}"))
    else:
        output.append(TextContent(type="text", text=f"ERROR ({result['error_kind']}): {result['error']}"))

    if result["log"]:
        output.append(TextContent(type="text", text=f"LOG:\n{result['log']}"))

    duration = cast(float, result.get("duration", 0.0))
    if duration:
        output.append(TextContent(type="text", text=f"Duration: {duration:.4f}s"))

    return output


@mcp.tool()  # type: ignore[misc]
async def commit_changes(tenant: str, message: str) -> str:
    """
    Commit all pending changes of a tenant.
    """
    try:
        result = await sandbox.commit_changes(tenant, message)
    except Exception as e:
        return f"Error committing changes: {e!s}"
    return "Committed." if result["committed"] else "Nothing committed."


def main() -> None:
    """Entry point for the MCP server."""
    logger.info(f"Starting tenant-sandbox MCP server ({sandbox.config.execution_mode} execution)")
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
