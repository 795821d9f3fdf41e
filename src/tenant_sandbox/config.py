from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IMAGES: dict[str, str] = {
    "python": "python:3.12-alpine",
    "node": "node:18-alpine",
}


class SandboxConfig(BaseSettings):
    """
    Configuration for the tenant sandbox.
    """

    tenants_dir: Path = Path("data") / "tenants"

    # Execution engine
    execution_mode: Literal["local", "container"] = "local"
    function_runtime: Literal["python", "node"] = "python"
    execution_timeout: float = Field(default=30.0, gt=0)
    node_binary: str = "node"

    # Container strategy
    container_image: str | None = None
    container_memory: str = "128m"
    container_cpus: float = Field(default=0.5, gt=0)
    container_workdir: str = "/app"

    # Version control
    git_binary: str = "git"
    git_user_name: str = "AI Builder"
    git_user_email: str = "ai@platform.local"
    commit_message_max_length: int = Field(default=200, ge=1)

    # Safety analyzer
    max_code_size: int = Field(default=100_000, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="TENANT_SANDBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("tenants_dir")
    @classmethod
    def _absolute_tenants_dir(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def image(self) -> str:
        """The container image used for the configured function runtime."""
        return self.container_image or DEFAULT_IMAGES[self.function_runtime]
