"""Synthesis of the per-run runner script.

A runner imports a tenant entry point, calls it with the decoded params and
reports the outcome: JSON on stdout for a result, the error on stderr plus a
non-zero exit code for a failure. Each runner gets a random file name so that
concurrent runs for the same tenant never share a file.
"""

import json
import os
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from loguru import logger

from tenant_sandbox.exceptions import RunnerPreparationError
from tenant_sandbox.filesystem import TenantFileSystem

FunctionRuntime = Literal["python", "node"]

RUNNER_PREFIX = "__runner_"

PYTHON_RUNNER = '''import asyncio
import inspect
import json
import sys
import traceback
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path

ENTRY_POINT = {entry_point!r}
PARAMS = json.loads({params_json!r})
EXPORT_NAMES = ("handler", "main", "default")


async def _settle(value):
    return await value


def _load_entry():
    code_dir = Path(__file__).resolve().parent
    sys.path.insert(0, str(code_dir))
    spec = spec_from_file_location("tenant_entry", code_dir / ENTRY_POINT)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load entry point {{ENTRY_POINT}}")
    module = module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _resolve_target(module):
    for name in EXPORT_NAMES:
        if hasattr(module, name):
            exported = getattr(module, name)
            if callable(exported):
                return exported
            if callable(getattr(exported, "handler", None)):
                return exported.handler
    return None


def main():
    try:
        target = _resolve_target(_load_entry())
        if target is None:
            result = {{"success": True}}
        else:
            result = target(PARAMS)
            if inspect.isawaitable(result):
                result = asyncio.run(_settle(result))
        sys.stdout.write(json.dumps(result, default=str))
        sys.stdout.flush()
    except BaseException:
        traceback.print_exc()
        sys.exit(1)


main()
'''

NODE_RUNNER = """try {{
    const main = require({entry_point});
    const params = JSON.parse({params_json});

    (async () => {{
        try {{
            let result;
            if (typeof main === 'function') {{
                result = await main(params);
            }} else if (main && typeof main.handler === 'function') {{
                result = await main.handler(params);
            }} else {{
                result = {{ success: true }};
            }}
            process.stdout.write(JSON.stringify(result === undefined ? null : result));
        }} catch (e) {{
            console.error(e);
            process.exit(1);
        }}
    }})();
}} catch (e) {{
    console.error(e);
    process.exit(1);
}}
"""


@dataclass(frozen=True)
class PreparedRunner:
    """A runner script written into a tenant code directory.

    Attributes:
        code_dir: The tenant code directory the runner lives in.
        runner_path: Absolute path of the runner script.
        runner_name: File name of the runner, relative to ``code_dir``.
        runtime: The function runtime the runner targets.
    """

    code_dir: Path
    runner_path: Path
    runner_name: str
    runtime: FunctionRuntime


def _ensure_manifest(code_dir: Path, runtime: FunctionRuntime) -> None:
    # Force CommonJS so ``require`` resolves the entry point
    if runtime == "node":
        manifest = code_dir / "package.json"
        if not manifest.exists():
            manifest.write_text(json.dumps({"type": "commonjs"}), encoding="utf-8")


def render_runner(entry_point: str, params: Any, runtime: FunctionRuntime) -> str:
    """Renders the runner source for one run.

    Raises:
        RunnerPreparationError: If ``params`` is not JSON-serializable.
    """
    try:
        params_json = json.dumps(params)
    except (TypeError, ValueError) as e:
        raise RunnerPreparationError(f"Parameters are not JSON-serializable: {e}") from e

    if runtime == "node":
        return NODE_RUNNER.format(
            entry_point=json.dumps(f"./{entry_point}"),
            params_json=json.dumps(params_json),
        )
    return PYTHON_RUNNER.format(entry_point=entry_point, params_json=params_json)


@contextmanager
def prepare_runner(
    filesystem: TenantFileSystem,
    tenant: str,
    entry_point: str,
    params: Any,
    runtime: FunctionRuntime = "python",
) -> Iterator[PreparedRunner]:
    """Writes a runner for ``entry_point`` and removes it when the block exits.

    The runner file is deleted on every exit path, including exceptions raised
    while the runner is being spawned.

    Args:
        filesystem: The tenant file system used to resolve paths.
        tenant: The tenant identifier.
        entry_point: Entry module, relative to the tenant code directory.
        params: JSON-serializable value handed to the entry point.
        runtime: ``python`` or ``node``.

    Yields:
        PreparedRunner: Location of the runner script.

    Raises:
        InvalidTenantError: If the tenant id is malformed.
        PathTraversalError: If the entry point escapes the tenant code directory.
        RunnerPreparationError: If the tenant is not initialized or params cannot be encoded.
    """
    entry_path = filesystem.resolve_path(tenant, entry_point)
    code_dir = filesystem.code_dir(tenant)
    if not code_dir.is_dir():
        raise RunnerPreparationError(f"Tenant {tenant} has no code directory")

    relative_entry = entry_path.relative_to(code_dir).as_posix()
    source = render_runner(relative_entry, params, runtime)
    _ensure_manifest(code_dir, runtime)

    suffix = ".cjs" if runtime == "node" else ".py"
    runner_name = f"{RUNNER_PREFIX}{uuid.uuid4().hex}{suffix}"
    runner_path = code_dir / runner_name

    # O_EXCL guarantees we never clobber another run's file
    fd = os.open(runner_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(source)

    try:
        yield PreparedRunner(code_dir=code_dir, runner_path=runner_path, runner_name=runner_name, runtime=runtime)
    finally:
        try:
            runner_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove runner {runner_name} for tenant {tenant}: {e}")
