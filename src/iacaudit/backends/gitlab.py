"""GitLab (gitlab.com or self-managed) REST v4 backend."""

from __future__ import annotations

import base64
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import httpx

from iacaudit.backends.base import SourceBackend
from iacaudit.classify import is_not_found
from iacaudit.config import Settings
from iacaudit.errors import BackendError, ConfigError
from iacaudit.extraction.filetypes import detect_kind
from iacaudit.models import FileContent, Platform, Repository, TreeEntry


def _project_id(full_name: str) -> str:
    return quote(full_name, safe="")


class GitLabBackend(SourceBackend):
    platform = Platform.GITLAB

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
        token = (token if token is not None else self.settings.gitlab_token).strip()
        if not token:
            raise ConfigError("GitLab token is required (set GITLAB_TOKEN)")
        self.base_url = (base_url or self.settings.gitlab_base_url).rstrip("/")
        self.per_page = self.settings.api_per_page
        self.max_pages = self.settings.gitlab_max_pages
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/api/v4",
            headers={"PRIVATE-TOKEN": token, "User-Agent": "iacaudit"},
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
        )

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
        namespace = payload.get("namespace") or {}
        return Repository(
            owner=str(namespace.get("full_path") or namespace.get("path") or ""),
            name=str(payload.get("path") or payload["name"]),
            full_name=str(payload["path_with_namespace"]),
            default_branch=str(payload.get("default_branch") or ""),
            archived=bool(payload.get("archived", False)),
            private=payload.get("visibility") != "public",
            url=str(payload.get("web_url", "")),
            clone_url=str(payload.get("http_url_to_repo", "")),
        )

    async def _is_group(self, owner: str) -> bool:
        try:
            await self._get_json(f"/groups/{quote(owner, safe='')}", {"with_projects": "false"})
        except BackendError as exc:
            if is_not_found(exc):
                return False
            raise
        return True

    async def _iter_repositories(self, owner: str) -> AsyncIterator[Repository]:
        if await self._is_group(owner):
            self.logger.debug("%s is a group", owner)
            path = f"/groups/{quote(owner, safe='')}/projects"
            params: dict[str, Any] = {"include_subgroups": "true"}
        else:
            self.logger.debug("%s is a user", owner)
            path = f"/users/{quote(owner, safe='')}/projects"
            params = {}
        for page in range(1, self.max_pages + 1):
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
        self.logger.warning(
            "Stopped listing projects for %s after %d pages", owner, self.max_pages
        )

    async def _fetch_repository(self, owner: str, name: str) -> Repository:
        payload = await self._get_json(f"/projects/{_project_id(f'{owner}/{name}')}")
        return self._to_repository(payload)

    async def _list_files(self, repository: Repository) -> list[TreeEntry]:
        if not repository.default_branch:
            self.logger.info("Project %s has no default branch", repository.full_name)
            return []
        path = f"/projects/{_project_id(repository.full_name)}/repository/tree"
        entries: list[TreeEntry] = []
        page = 1
        while True:
            payload = await self._get_json(
                path,
                {
                    "recursive": "true",
                    "ref": repository.default_branch,
                    "per_page": self.per_page,
                    "page": page,
                },
            )
            if not isinstance(payload, list) or not payload:
                break
            for item in payload:
                if item.get("type") != "blob" or not item.get("path"):
                    continue
                kind = detect_kind(item["path"])
                if kind is not None:
                    entries.append(TreeEntry(path=item["path"], kind=kind, sha=item.get("id")))
            if len(payload) < self.per_page:
                break
            page += 1
        self.logger.debug("Found %d IaC files in %s tree", len(entries), repository.full_name)
        return entries

    async def _read_file(self, repository: Repository, entry: TreeEntry) -> FileContent:
        payload = await self._get_json(
            f"/projects/{_project_id(repository.full_name)}/repository/files/"
            f"{quote(entry.path, safe='')}",
            {"ref": repository.default_branch},
        )
        return FileContent.from_bytes(base64.b64decode(payload.get("content", "")))

    def _file_url(self, repository: Repository, path: str) -> str:
        return f"{repository.url}/-/blob/{repository.default_branch}/{path}"
