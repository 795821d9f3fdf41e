import asyncio
import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger


@dataclass(frozen=True)
class GitResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitRepository:
    """Minimal async wrapper around the ``git`` command line for one tenant root.

    Arguments are always passed as an argv list, never through a shell.
    """

    def __init__(self, root: Path, git_binary: str = "git"):
        self.root = root
        self.git_binary = git_binary

    async def run(self, *args: str) -> GitResult:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
        # Never let git walk up into a repository that encloses the tenants dir
        env["GIT_CEILING_DIRECTORIES"] = str(self.root.parent)

        process = await asyncio.create_subprocess_exec(
            self.git_binary,
            *args,
            cwd=self.root,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        return GitResult(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    def exists(self) -> bool:
        return (self.root / ".git").exists()

    async def init(self, user_name: str, user_email: str) -> bool:
        """Creates the repository and a local author identity if it does not exist yet."""
        if self.exists():
            return True

        for args in (
            ("init",),
            ("config", "user.name", user_name),
            ("config", "user.email", user_email),
        ):
            result = await self.run(*args)
            if not result.ok:
                logger.warning(f"git {args[0]} failed in {self.root}: {result.stderr.strip()}")
                return False

        logger.info(f"Initialized git repository in {self.root}")
        return True

    async def commit_all(self, message: str) -> bool:
        """Stages every change and commits it. Returns False when nothing was committed."""
        staged = await self.run("add", "-A")
        if not staged.ok:
            logger.warning(f"git add failed in {self.root}: {staged.stderr.strip()}")
            return False

        committed = await self.run("commit", "-m", message)
        if not committed.ok:
            # An empty diff lands here too
            logger.debug(f"git commit returned {committed.returncode} in {self.root}")
            return False
        return True
