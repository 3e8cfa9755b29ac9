"""GitHub (and GitHub Enterprise) REST backend."""

from __future__ import annotations

import base64
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import httpx

from iacaudit.backends.base import SourceBackend
from iacaudit.classify import is_not_found
from iacaudit.config import Settings
from iacaudit.errors import BackendError, ConfigError, ErrorKind
from iacaudit.extraction.filetypes import detect_kind
from iacaudit.models import FileContent, Platform, Repository, TreeEntry

API_VERSION = "2022-11-28"


class GitHubBackend(SourceBackend):
    platform = Platform.GITHUB

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(settings, **kwargs)
        token = (token if token is not None else self.settings.github_token).strip()
        if not token:
            raise ConfigError("GitHub token is required (set GITHUB_TOKEN)")
        self.base_url = self._normalize_base_url(base_url or self.settings.github_api_base_url)
        self.per_page = self.settings.api_per_page
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "iacaudit",
            },
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
        )

    @staticmethod
    def _normalize_base_url(base_url: str) -> str:
        return base_url.rstrip("/")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        async def request() -> Any:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            return response.json()

        return await self._call(request, f"GET {path}")

    @staticmethod
    def _to_repository(payload: dict[str, Any]) -> Repository:
        owner = payload.get("owner") or {}
        return Repository(
            owner=str(owner.get("login", "")),
            name=str(payload["name"]),
            full_name=str(payload["full_name"]),
            default_branch=str(payload.get("default_branch") or ""),
            archived=bool(payload.get("archived", False)),
            private=bool(payload.get("private", False)),
            url=str(payload.get("html_url", "")),
            clone_url=str(payload.get("clone_url", "")),
        )

    async def _is_organization(self, owner: str) -> bool:
        try:
            await self._get_json(f"/orgs/{quote(owner, safe='')}")
        except BackendError as exc:
            if is_not_found(exc):
                return False
            raise
        return True

    async def _iter_repositories(self, owner: str) -> AsyncIterator[Repository]:
        if await self._is_organization(owner):
            self.logger.debug("%s is an organization", owner)
            path = f"/orgs/{quote(owner, safe='')}/repos"
            params: dict[str, Any] = {"type": "all"}
        else:
            self.logger.debug("%s is a user", owner)
            path = f"/users/{quote(owner, safe='')}/repos"
            params = {"type": "owner"}
        page = 1
        while True:
            payload = await self._get_json(
                path, {**params, "per_page": self.per_page, "page": page}
            )
            if not isinstance(payload, list) or not payload:
                return
            for item in payload:
                if isinstance(item, dict):
                    yield self._to_repository(item)
            if len(payload) < self.per_page:
                return
            page += 1

    async def _fetch_repository(self, owner: str, name: str) -> Repository:
        payload = await self._get_json(f"/repos/{quote(owner, safe='')}/{quote(name, safe='')}")
        return self._to_repository(payload)

    async def _list_files(self, repository: Repository) -> list[TreeEntry]:
        if not repository.default_branch:
            self.logger.info("Repository %s has no default branch", repository.full_name)
            return []
        path = (
            f"/repos/{repository.full_name}/git/trees/"
            f"{quote(repository.default_branch, safe='')}"
        )
        try:
            payload = await self._get_json(path, {"recursive": "1"})
        except BackendError as exc:
            if exc.http_status == 409:
                self.logger.info("Repository %s is empty", repository.full_name)
                return []
            raise
        if payload.get("truncated"):
            self.logger.warning(
                "Tree for %s was truncated by the API; some files may be missing",
                repository.full_name,
            )
        entries: list[TreeEntry] = []
        for item in payload.get("tree", []):
            if item.get("type") != "blob" or not item.get("path"):
                continue
            kind = detect_kind(item["path"])
            if kind is None:
                continue
            entries.append(
                TreeEntry(path=item["path"], kind=kind, sha=item.get("sha"), size=item.get("size"))
            )
        self.logger.debug("Found %d IaC files in %s tree", len(entries), repository.full_name)
        return entries

    async def _read_file(self, repository: Repository, entry: TreeEntry) -> FileContent:
        payload = await self._get_json(
            f"/repos/{repository.full_name}/contents/{quote(entry.path)}",
            {"ref": repository.default_branch},
        )
        if not isinstance(payload, dict) or payload.get("type", "file") != "file":
            raise BackendError(
                f"{entry.path} is not a file",
                ErrorKind.PLATFORM_ERROR,
                self.platform.value,
            )
        return FileContent.from_bytes(base64.b64decode(payload.get("content", "")))

    def _file_url(self, repository: Repository, path: str) -> str:
        return f"{repository.url}/blob/{repository.default_branch}/{path}"
