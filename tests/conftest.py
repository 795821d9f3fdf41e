import shutil
from collections.abc import Callable
from pathlib import Path

import pytest
from tenant_sandbox.config import SandboxConfig
from tenant_sandbox.filesystem import TenantFileSystem

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def config(tmp_path: Path) -> SandboxConfig:
    return SandboxConfig(tenants_dir=tmp_path / "tenants", execution_timeout=10.0)


@pytest.fixture
def filesystem(config: SandboxConfig) -> TenantFileSystem:
    return TenantFileSystem(config)


@pytest.fixture
def code_dir(filesystem: TenantFileSystem) -> Path:
    """Code directory of tenant ``acme``, created without git."""
    path = filesystem.code_dir("acme")
    (path / "lib").mkdir(parents=True)
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def write_code(code_dir: Path) -> Callable[[str, str], Path]:
    def _write(relative: str, source: str) -> Path:
        target = code_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(source, encoding="utf-8")
        return target

    return _write
