# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import fnmatch
import os
import re
from pathlib import Path, PurePosixPath

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]
from loguru import logger

from tenant_sandbox.config import SandboxConfig
from tenant_sandbox.exceptions import (
    InvalidTenantError,
    PathTraversalError,
    SandboxError,
    SensitiveFileError,
    TenantFileNotFoundError,
)
from tenant_sandbox.models import FileEntry
from tenant_sandbox.utils.text import sanitize_commit_message
from tenant_sandbox.vcs import GitRepository

TENANT_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")

SENSITIVE_NAME_PATTERNS: tuple[str, ...] = (
    ".*",
    "*.env",
    "*.pem",
    "*.key",
    "id_rsa*",
    "*.sqlite",
    "*.db",
)

PYTHON_DB_SHIM = '''"""Data-access helper for tenant {tenant}."""

import os
import sqlite3


def _database_path():
    # Set by the execution engine; the database is not reachable from every runtime
    path = os.environ.get("TENANT_DB_PATH")
    if not path:
        raise RuntimeError("TENANT_DB_PATH is not set, the tenant database is not available in this runtime")
    return path


def query(sql, *args):
    with sqlite3.connect(_database_path()) as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.execute(sql, args)
        if sql.strip().lower().startswith("select"):
            return [dict(row) for row in cursor.fetchall()]
        return {{"changes": cursor.rowcount, "last_row_id": cursor.lastrowid}}
'''

# Runner scripts are transient and must never end up in a commit
TENANT_GITIGNORE = "src/__runner_*\n__pycache__/\nnode_modules/\n"

NODE_DB_SHIM = """// Data-access helper for tenant {tenant}
const Database = require('better-sqlite3');

let db = null;

function connection() {{
    if (db === null) {{
        const dbPath = process.env.TENANT_DB_PATH;
        if (!dbPath) {{
            throw new Error('TENANT_DB_PATH is not set, the tenant database is not available in this runtime');
        }}
        db = new Database(dbPath);
    }}
    return db;
}}

module.exports = {{
    query: (sql, ...args) => {{
        const stmt = connection().prepare(sql);
        if (sql.trim().toLowerCase().startsWith('select')) {{
            return stmt.all(...args);
        }}
        return stmt.run(...args);
    }}
}};
"""


def validate_tenant(tenant: object) -> str:
    """Checks a tenant identifier against the allowed format.

    Raises:
        InvalidTenantError: If the identifier is not a 1-64 character string of
            letters, digits, hyphens and underscores.
    """
    if not isinstance(tenant, str) or not TENANT_ID_PATTERN.fullmatch(tenant):
        raise InvalidTenantError(f"Invalid tenant id: {tenant!r}")
    return tenant


def is_sensitive_name(name: str) -> bool:
    lowered = name.lower()
    return any(fnmatch.fnmatchcase(lowered, pattern) for pattern in SENSITIVE_NAME_PATTERNS)


def _is_within(child: str, parent: str) -> bool:
    return child == parent or child.startswith(parent.rstrip(os.sep) + os.sep)


def _resolve_existing(path: str) -> str:
    """Resolves the longest existing prefix of ``path`` strictly.

    Symlink loops and unreadable links raise ``OSError``. A dangling link is
    followed lexically so its target is still checked against the root.
    """
    existing = path
    while not os.path.lexists(existing):
        parent = os.path.dirname(existing)
        if parent == existing:
            break
        existing = parent

    try:
        resolved = os.path.realpath(existing, strict=True)
    except FileNotFoundError:
        resolved = os.path.realpath(existing)

    if existing == path:
        return resolved
    return os.path.join(resolved, os.path.relpath(path, existing))


class TenantFileSystem:
    """Tenant-scoped access to a shared directory tree.

    Every path handed in by a caller is resolved against the tenant code
    directory and rejected if it escapes it, lexically or through a symlink.
    Ambiguous cases are treated as escapes.
    """

    def __init__(self, config: SandboxConfig | None = None):
        self.config = config or SandboxConfig()
        self.tenants_dir = self.config.tenants_dir

    def tenant_root(self, tenant: str) -> Path:
        return self.tenants_dir / validate_tenant(tenant)

    def code_dir(self, tenant: str) -> Path:
        """The directory generated code for ``tenant`` lives in."""
        return self.tenant_root(tenant) / "src"

    def database_path(self, tenant: str) -> Path:
        """The embedded database of ``tenant``, kept outside the code directory."""
        return self.tenants_dir / f"{validate_tenant(tenant)}.db"

    def repository(self, tenant: str) -> GitRepository:
        return GitRepository(self.tenant_root(tenant), git_binary=self.config.git_binary)

    async def init_tenant(self, tenant: str) -> Path:
        """Creates the tenant tree, its helper shim and its git repository.

        Safe to call repeatedly; existing files are left untouched.

        Args:
            tenant: The tenant identifier.

        Returns:
            Path: The tenant code directory.

        Raises:
            InvalidTenantError: If the identifier is malformed.
        """
        code_dir = self.code_dir(tenant)
        lib_dir = code_dir / "lib"
        lib_dir.mkdir(parents=True, exist_ok=True)

        if self.config.function_runtime == "node":
            shim_path, template = lib_dir / "db.js", NODE_DB_SHIM
        else:
            shim_path, template = lib_dir / "db.py", PYTHON_DB_SHIM

        if not shim_path.exists():
            async with aiofiles.open(shim_path, "w", encoding="utf-8") as f:
                await f.write(template.format(tenant=tenant))

        ignore_path = self.tenant_root(tenant) / ".gitignore"
        if not ignore_path.exists():
            async with aiofiles.open(ignore_path, "w", encoding="utf-8") as f:
                await f.write(TENANT_GITIGNORE)

        repo = self.repository(tenant)
        try:
            await repo.init(self.config.git_user_name, self.config.git_user_email)
        except OSError as e:
            logger.warning(f"Could not initialize git for tenant {tenant}: {e}")

        logger.info(f"Tenant {tenant} initialized at {code_dir}")
        return code_dir

    def resolve_path(self, tenant: str, relative_path: str, *, allow_root: bool = False) -> Path:
        """Resolves a caller supplied path inside the tenant code directory.

        Args:
            tenant: The tenant identifier.
            relative_path: A path relative to the tenant code directory.
            allow_root: Whether the code directory itself is an acceptable target.

        Returns:
            Path: The absolute, validated path.

        Raises:
            InvalidTenantError: If the identifier is malformed.
            PathTraversalError: If the path escapes the tenant code directory.
            SensitiveFileError: If the path names a denylisted file.
        """
        root = str(self.code_dir(tenant))

        if not isinstance(relative_path, str):
            raise PathTraversalError("Access denied: path must be a string")
        if "\x00" in relative_path:
            raise PathTraversalError("Access denied: null byte in path")

        normalized = relative_path.replace("\\", "/")
        if normalized.startswith("/") or os.path.isabs(normalized):
            raise PathTraversalError(f"Access denied: absolute path {relative_path!r}")

        candidate = os.path.normpath(os.path.join(root, normalized))
        if not _is_within(candidate, root):
            logger.warning(f"Blocked path traversal for tenant {tenant}: {relative_path!r}")
            raise PathTraversalError(f"Access denied: {relative_path!r} escapes the tenant root")

        if candidate == root:
            if not allow_root:
                raise PathTraversalError("Access denied: the tenant root is not a file")
        else:
            parts = PurePosixPath(os.path.relpath(candidate, root).replace(os.sep, "/")).parts
            if any(part.startswith(".") for part in parts) or is_sensitive_name(parts[-1]):
                logger.warning(f"Blocked sensitive file access for tenant {tenant}: {relative_path!r}")
                raise SensitiveFileError(f"Access denied: {relative_path!r} is a protected file")

        try:
            real_root = os.path.realpath(root)
            real_candidate = _resolve_existing(candidate)
        except (OSError, ValueError) as e:
            logger.warning(f"Blocked unresolvable path for tenant {tenant}: {relative_path!r}")
            raise PathTraversalError(f"Access denied: cannot resolve {relative_path!r}") from e

        if not _is_within(real_candidate, real_root):
            logger.warning(f"Blocked symlink escape for tenant {tenant}: {relative_path!r}")
            raise PathTraversalError(f"Access denied: {relative_path!r} resolves outside the tenant root")

        return Path(candidate)

    async def read_file(self, tenant: str, relative_path: str) -> str:
        """Reads a UTF-8 text file from the tenant code directory.

        Raises:
            TenantFileNotFoundError: If the file does not exist.
        """
        path = self.resolve_path(tenant, relative_path)
        if not path.is_file():
            raise TenantFileNotFoundError(f"File not found: {relative_path}")

        async with aiofiles.open(path, "r", encoding="utf-8", newline="") as f:
            content: str = await f.read()
        return content

    async def write_file(self, tenant: str, relative_path: str, content: str) -> Path:
        """Writes a UTF-8 text file, creating intermediate directories as needed."""
        path = self.resolve_path(tenant, relative_path)
        if path.is_dir():
            raise SandboxError(f"Cannot write {relative_path}: it is a directory")

        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(content)

        logger.debug(f"Wrote {len(content)} characters to {relative_path} for tenant {tenant}")
        return path

    async def delete_file(self, tenant: str, relative_path: str) -> None:
        path = self.resolve_path(tenant, relative_path)
        if not path.is_file():
            raise TenantFileNotFoundError(f"File not found: {relative_path}")
        await aiofiles.os.remove(path)
        logger.debug(f"Deleted {relative_path} for tenant {tenant}")

    def list_files(self, tenant: str, directory: str = "", recursive: bool = True) -> list[FileEntry]:
        """Lists non-hidden entries below a directory of the tenant code tree.

        Entries whose symlink target leaves the tenant root are skipped, and
        symlinked directories are never descended into.

        Args:
            tenant: The tenant identifier.
            directory: Directory relative to the tenant code directory.
            recursive: Whether to descend into subdirectories.

        Returns:
            list[FileEntry]: Entries sorted by path. Empty if the directory is missing.
        """
        target = self.resolve_path(tenant, directory or ".", allow_root=True)
        if not target.is_dir():
            return []

        root = self.code_dir(tenant)
        real_root = os.path.realpath(root)
        entries: list[FileEntry] = []
        pending = [target]

        while pending:
            current = pending.pop()
            try:
                with os.scandir(current) as it:
                    children = list(it)
            except OSError as e:
                logger.warning(f"Failed to list {current} for tenant {tenant}: {e}")
                continue

            for child in children:
                if child.name.startswith("."):
                    continue
                try:
                    if child.is_symlink() and not _is_within(os.path.realpath(child.path), real_root):
                        continue
                    is_dir = child.is_dir()
                except OSError:
                    continue

                rel = Path(child.path).relative_to(root).as_posix()
                entries.append(FileEntry(name=child.name, type="directory" if is_dir else "file", path=rel))
                if recursive and is_dir and not child.is_symlink():
                    pending.append(Path(child.path))

        return sorted(entries, key=lambda e: e.path)

    async def commit(self, tenant: str, message: str) -> bool:
        """Stages and commits every pending change in the tenant repository.

        Returns:
            bool: True if a commit was created. False on any failure, including
            an empty diff or a missing git binary.
        """
        repo = self.repository(tenant)
        if not repo.exists():
            logger.warning(f"Tenant {tenant} has no repository; nothing committed")
            return False

        safe_message = sanitize_commit_message(message, self.config.commit_message_max_length)
        try:
            committed = await repo.commit_all(safe_message)
        except OSError as e:
            logger.warning(f"Commit failed for tenant {tenant}: {e}")
            return False

        if committed:
            logger.info(f"Committed changes for tenant {tenant}: {safe_message}")
        return committed
