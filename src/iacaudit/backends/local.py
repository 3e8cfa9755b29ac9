"""Local directory backend: the target directory is the single repository."""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from iacaudit.backends.base import SourceBackend
from iacaudit.config import Settings
from iacaudit.errors import BackendError, ErrorKind
from iacaudit.extraction.filetypes import detect_kind
from iacaudit.models import FileContent, Platform, Repository, TreeEntry

SKIP_DIRECTORIES = frozenset(
    {
        "node_modules",
        ".git",
        ".terraform",
        ".terragrunt-cache",
        "dist",
        "build",
        "target",
        ".vscode",
        ".idea",
        "__pycache__",
    }
)


def should_skip_directory(name: str) -> bool:
    return name in SKIP_DIRECTORIES or name.startswith(".")


def resolve_target(owner: str, name: str = "") -> Path:
    base = Path(owner).expanduser()
    return (base / name if name else base).resolve()


class LocalBackend(SourceBackend):
    platform = Platform.LOCAL

    def __init__(self, settings: Settings | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("repo_concurrency", 1)
        kwargs.setdefault("max_retries", 1)
        super().__init__(settings, **kwargs)

    def _validate_directory(self, path: Path) -> None:
        try:
            if not path.is_dir():
                if path.exists():
                    raise BackendError(
                        f"Path is not a directory: {path}",
                        ErrorKind.INVALID_CONFIGURATION,
                        self.platform.value,
                    )
                raise BackendError(
                    f"Directory does not exist: {path}",
                    ErrorKind.RESOURCE_NOT_FOUND,
                    self.platform.value,
                )
            os.scandir(path).close()
        except PermissionError as exc:
            raise BackendError(
                f"Permission denied reading directory: {path}",
                ErrorKind.AUTHORIZATION_FAILED,
                self.platform.value,
                cause=exc,
            ) from exc

    def _repository_for(self, path: Path) -> Repository:
        return Repository(
            owner=str(path.parent),
            name=path.name,
            full_name=str(path),
            default_branch="main",
            archived=False,
            private=True,
            url=path.as_uri(),
            clone_url=path.as_uri(),
        )

    async def _describe(self, path: Path) -> Repository:
        await asyncio.to_thread(self._validate_directory, path)
        return self._repository_for(path)

    async def _iter_repositories(self, owner: str) -> AsyncIterator[Repository]:
        yield await self._describe(resolve_target(owner))

    async def _fetch_repository(self, owner: str, name: str) -> Repository:
        return await self._describe(resolve_target(owner, name))

    async def repository_exists(self, owner: str, name: str) -> bool | None:
        """Stat the directory; ``None`` when it cannot be checked."""
        path = resolve_target(self._validate_owner(owner), name.strip() if name else "")
        try:
            return await asyncio.to_thread(path.is_dir)
        except OSError as exc:
            self.logger.warning("Unable to check directory existence: %s (%s)", path, exc)
            return None

    def _walk(self, root: Path) -> list[TreeEntry]:
        entries: list[TreeEntry] = []

        def on_error(exc: OSError) -> None:
            self.logger.warning("Error reading directory %s: %s", exc.filename, exc)

        for current, dirnames, filenames in os.walk(root, onerror=on_error):
            kept = []
            for dirname in sorted(dirnames):
                if should_skip_directory(dirname):
                    self.logger.debug("Skipping directory %s", os.path.join(current, dirname))
                else:
                    kept.append(dirname)
            dirnames[:] = kept
            for filename in sorted(filenames):
                full_path = Path(current, filename)
                relative = full_path.relative_to(root).as_posix()
                kind = detect_kind(relative)
                if kind is None or not full_path.is_file():
                    continue
                entries.append(TreeEntry(path=relative, kind=kind))
        return entries

    async def _list_files(self, repository: Repository) -> list[TreeEntry]:
        root = Path(repository.full_name)
        self.logger.info("Scanning directory %s", root)
        entries = await asyncio.to_thread(self._walk, root)
        self.logger.info("Found %d IaC files in %s", len(entries), root)
        return entries

    async def _read_file(self, repository: Repository, entry: TreeEntry) -> FileContent:
        path = Path(repository.full_name, entry.path)
        data = await asyncio.to_thread(path.read_bytes)
        return FileContent.from_bytes(data)

    def _file_url(self, repository: Repository, path: str) -> str:
        return Path(repository.full_name, path).as_uri()
