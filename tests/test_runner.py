import json
from collections.abc import Callable
from pathlib import Path

import pytest
from tenant_sandbox.exceptions import PathTraversalError, RunnerPreparationError
from tenant_sandbox.filesystem import TenantFileSystem
from tenant_sandbox.runner import RUNNER_PREFIX, prepare_runner, render_runner


def test_runner_is_removed_after_the_block(
    filesystem: TenantFileSystem, code_dir: Path, write_code: Callable[[str, str], Path]
) -> None:
    write_code("hello.py", "def handler(params):\n    return params\n")

    with prepare_runner(filesystem, "acme", "hello.py", {"name": "Ada"}) as runner:
        assert runner.runner_path.is_file()
        assert runner.runner_path.parent == code_dir
        assert runner.runner_name.startswith(RUNNER_PREFIX)
        assert runner.runner_name.endswith(".py")
        assert runner.runtime == "python"

    assert not runner.runner_path.exists()


def test_runner_is_removed_when_the_block_raises(
    filesystem: TenantFileSystem, code_dir: Path, write_code: Callable[[str, str], Path]
) -> None:
    write_code("hello.py", "def handler(params):\n    return params\n")

    with pytest.raises(RuntimeError, match="spawn exploded"):
        with prepare_runner(filesystem, "acme", "hello.py", None) as runner:
            raise RuntimeError("spawn exploded")

    assert not runner.runner_path.exists()
    assert not list(code_dir.glob(f"{RUNNER_PREFIX}*"))


def test_runner_names_are_unique(filesystem: TenantFileSystem, code_dir: Path) -> None:
    with prepare_runner(filesystem, "acme", "a.py", 1) as first, prepare_runner(filesystem, "acme", "a.py", 2) as second:
        assert first.runner_name != second.runner_name
        assert len(list(code_dir.glob(f"{RUNNER_PREFIX}*"))) == 2


def test_params_are_embedded_as_json(filesystem: TenantFileSystem, code_dir: Path) -> None:
    params = {"text": "quote ' and \" and \\ and ''' end", "big": "x" * 200_000}

    with prepare_runner(filesystem, "acme", "hello.py", params) as runner:
        source = runner.runner_path.read_text(encoding="utf-8")

    assert json.dumps(params) in source or repr(json.dumps(params)) in source


def test_node_runner_and_manifest(filesystem: TenantFileSystem, code_dir: Path) -> None:
    with prepare_runner(filesystem, "acme", "api/users.js", {"id": 1}, runtime="node") as runner:
        assert runner.runner_name.endswith(".cjs")
        source = runner.runner_path.read_text(encoding="utf-8")
        assert 'require("./api/users.js")' in source

    assert json.loads((code_dir / "package.json").read_text(encoding="utf-8")) == {"type": "commonjs"}


def test_existing_manifest_is_kept(filesystem: TenantFileSystem, code_dir: Path) -> None:
    (code_dir / "package.json").write_text('{"type": "commonjs", "name": "acme"}', encoding="utf-8")

    with prepare_runner(filesystem, "acme", "index.js", None, runtime="node"):
        pass

    assert "acme" in (code_dir / "package.json").read_text(encoding="utf-8")


def test_entry_point_must_stay_inside_code_dir(filesystem: TenantFileSystem, code_dir: Path) -> None:
    with pytest.raises(PathTraversalError):
        with prepare_runner(filesystem, "acme", "../../outside.py", None):
            pass  # pragma: no cover


def test_missing_code_dir(filesystem: TenantFileSystem) -> None:
    with pytest.raises(RunnerPreparationError):
        with prepare_runner(filesystem, "ghost", "hello.py", None):
            pass  # pragma: no cover


def test_unserializable_params(filesystem: TenantFileSystem, code_dir: Path) -> None:
    with pytest.raises(RunnerPreparationError, match="JSON"):
        with prepare_runner(filesystem, "acme", "hello.py", {"when": object()}):
            pass  # pragma: no cover
    assert not list(code_dir.glob(f"{RUNNER_PREFIX}*"))


def test_render_runner_python_source_compiles() -> None:
    source = render_runner("pkg/mod.py", {"a": [1, 2]}, "python")

    compile(source, "__runner_test.py", "exec")
    assert "'pkg/mod.py'" in source
