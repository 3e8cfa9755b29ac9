"""Source backend contract and the discovery pipeline shared by all backends.

Concrete backends only know how to list repositories, list the files of one
repository and read one file. Everything else (filtering, dedup, caching,
retry, bounded fan-out and failure aggregation) lives here once.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import TypeVar

from iacaudit.cache import RepositoryCache, make_cache_key
from iacaudit.classify import classify_error, is_not_found
from iacaudit.concurrency import process_concurrently_settled
from iacaudit.config import Settings, get_settings
from iacaudit.errors import BackendError, ConfigError
from iacaudit.extraction.filetypes import should_include_file
from iacaudit.models import (
    DiscoveryOptions,
    DiscoveryResult,
    FileContent,
    IacFile,
    IacKind,
    Platform,
    Repository,
    RepositoryFilter,
    RepositoryScan,
    TreeEntry,
)
from iacaudit.retry import RetryPolicy

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class SourceBackend(ABC):
    platform: Platform

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        repo_concurrency: int | None = None,
        file_concurrency: int | None = None,
        max_retries: int | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.logger = logging.getLogger(f"iacaudit.backends.{self.platform.value}")
        self.repo_concurrency = repo_concurrency or self.settings.repo_concurrency
        self.file_concurrency = file_concurrency or self.settings.file_concurrency
        self.retry = RetryPolicy(
            max_attempts=max_retries or self.settings.max_retries,
            base_ms=self.settings.backoff_base_ms,
            cap_ms=self.settings.backoff_cap_ms,
            sleep=sleep,
        )
        self.cache = RepositoryCache(enabled=bool(self.settings.cache_enabled))
        self._seen_repositories: set[str] = set()

    # -- platform hooks -------------------------------------------------

    @abstractmethod
    def _iter_repositories(self, owner: str) -> AsyncIterator[Repository]:
        """Yield every repository of ``owner``, page by page."""

    @abstractmethod
    async def _fetch_repository(self, owner: str, name: str) -> Repository: ...

    @abstractmethod
    async def _list_files(self, repository: Repository) -> list[TreeEntry]:
        """Return the IaC files of ``repository``; non-IaC paths are left out."""

    @abstractmethod
    async def _read_file(self, repository: Repository, entry: TreeEntry) -> FileContent:
        """Fetch one file; undecodable bytes are replaced rather than rejected."""

    @abstractmethod
    def _file_url(self, repository: Repository, path: str) -> str: ...

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> SourceBackend:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- boundary helpers -----------------------------------------------

    def _classify(self, exc: BaseException) -> BackendError:
        return classify_error(exc, self.platform.value)

    async def _once(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` a single time, raising failures as BackendError."""
        try:
            return await operation()
        except BackendError:
            raise
        except Exception as exc:
            raise self._classify(exc) from exc

    async def _call(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        """Run one idempotent request, retrying transient failures.

        Adapters wrap each individual request in this; the pipeline calls the
        hooks through :meth:`_once` so a request is never retried twice over.
        """
        return await self.retry.execute(
            lambda: self._once(operation),
            label,
            retry_if=lambda exc: isinstance(exc, BackendError) and exc.is_retryable(),
        )

    def _validate_owner(self, owner: str) -> str:
        if not isinstance(owner, str) or not owner.strip():
            raise ConfigError("Owner name is required and must be a non-empty string")
        return owner.strip()

    def _validate_name(self, name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("Repository name is required and must be a non-empty string")
        return name.strip()

    def _default_filter(self) -> RepositoryFilter:
        return RepositoryFilter(skip_archived=bool(self.settings.skip_archived))

    # -- repository lookups ---------------------------------------------

    async def get_repositories(
        self, owner: str, repo_filter: RepositoryFilter | None = None
    ) -> list[Repository]:
        """List the repositories of ``owner`` that pass ``repo_filter``.

        Filtering happens while pages stream in, and listing stops as soon as
        ``max_repositories`` accepted repositories have been collected. Any
        listing failure is raised as a BackendError.
        """
        owner = self._validate_owner(owner)
        repo_filter = repo_filter or self._default_filter()
        limit = repo_filter.max_repositories
        if limit is not None and limit <= 0:
            limit = None

        self._seen_repositories.clear()
        repositories: list[Repository] = []
        skipped = 0
        self.logger.info("Listing repositories for %s", owner)
        try:
            async with aclosing(self._iter_repositories(owner)) as stream:
                async for repository in stream:
                    if repository.full_name in self._seen_repositories:
                        continue
                    self._seen_repositories.add(repository.full_name)
                    if not repo_filter.accepts(repository):
                        skipped += 1
                        self.logger.debug("Skipping repository %s", repository.full_name)
                        continue
                    repositories.append(repository)
                    if limit is not None and len(repositories) >= limit:
                        self.logger.info("Reached repository limit of %d", limit)
                        break
        except (BackendError, ConfigError):
            raise
        except Exception as exc:
            raise self._classify(exc) from exc

        self.logger.info(
            "Found %d repositories for %s (%d filtered out)", len(repositories), owner, skipped
        )
        return repositories

    async def _lookup(self, owner: str, name: str) -> Repository | None:
        owner = self._validate_owner(owner)
        name = self._validate_name(name)
        key = make_cache_key(self.platform.value, "repository", owner, name)
        cached = self.cache.get(key)
        if cached is None or isinstance(cached, Repository):
            return cached
        try:
            repository = await self._once(lambda: self._fetch_repository(owner, name))
        except BackendError as exc:
            if not is_not_found(exc):
                raise
            self.logger.debug("Repository %s/%s not found", owner, name)
            repository = None
        self.cache.set(key, repository)
        return repository

    def _excluded(self, repository: Repository) -> bool:
        return bool(self.settings.skip_archived) and repository.archived

    async def repository_exists(self, owner: str, name: str) -> bool | None:
        """``True`` if present, ``False`` if missing, ``None`` if excluded (archived)."""
        repository = await self._lookup(owner, name)
        if repository is None:
            return False
        if self._excluded(repository):
            self.logger.debug("Repository %s is archived, treating as excluded", repository.full_name)
            return None
        return True

    async def get_repository(self, owner: str, name: str) -> Repository | None:
        repository = await self._lookup(owner, name)
        if repository is None or self._excluded(repository):
            return None
        return repository

    # -- file discovery -------------------------------------------------

    async def scan_repository(
        self, repository: Repository, options: DiscoveryOptions | None = None
    ) -> RepositoryScan:
        """Discover and read the IaC files of one repository.

        Listing failures raise; individual file read failures are logged,
        counted and dropped.
        """
        try:
            entries = await self._list_files(repository)
        except (BackendError, ConfigError):
            raise
        except Exception as exc:
            raise self._classify(exc) from exc

        selected = [entry for entry in entries if should_include_file(entry.path, options)]
        max_files = options.max_files if options else None
        if max_files is not None and 0 < max_files < len(selected):
            self.logger.info(
                "Limiting %s to %d of %d IaC files", repository.full_name, max_files, len(selected)
            )
            selected = selected[:max_files]

        async def fetch(entry: TreeEntry, index: int) -> IacFile:
            self.logger.debug(
                "Reading file %d/%d: %s", index + 1, len(selected), entry.path
            )
            fetched = await self._once(lambda: self._read_file(repository, entry))
            return IacFile(
                kind=entry.kind,
                repository=repository.full_name,
                path=entry.path,
                content=fetched.text,
                url=self._file_url(repository, entry.path),
                sha=entry.sha,
                size=fetched.size if fetched.size is not None else entry.size,
            )

        batch = await process_concurrently_settled(selected, fetch, self.file_concurrency)
        for entry, error in zip(selected, batch.errors):
            if error is not None:
                classified = self._classify(error)
                self.logger.warning(
                    "Dropping %s in %s: %s (%s)",
                    entry.path,
                    repository.full_name,
                    classified,
                    classified.kind.value,
                )
        files = [item for item in batch.results if item is not None]
        kinds = Counter(item.kind for item in files)
        self.logger.info(
            "Repository %s: %d IaC files (%d Terraform, %d Terragrunt), %d failed",
            repository.full_name,
            len(files),
            kinds[IacKind.TERRAFORM],
            kinds[IacKind.TERRAGRUNT],
            batch.error_count,
        )
        return RepositoryScan(
            repository=repository.full_name, files=files, files_failed=batch.error_count
        )

    async def find_iac_files_in_repository(
        self, repository: Repository, options: DiscoveryOptions | None = None
    ) -> list[IacFile]:
        scan = await self.scan_repository(repository, options)
        return scan.files

    async def discover_repository(
        self, owner: str, name: str, options: DiscoveryOptions | None = None
    ) -> DiscoveryResult:
        """Scan one named repository; missing or excluded means an empty result."""
        repository = await self.get_repository(owner, name)
        if repository is None:
            self.logger.warning("Repository %s/%s not found or excluded", owner, name)
            return DiscoveryResult(owner=owner)
        scan = await self.scan_repository(repository, options)
        return DiscoveryResult(
            owner=owner,
            files=scan.files,
            repositories_total=1,
            files_failed=scan.files_failed,
        )

    async def find_iac_files_for_repository(
        self, owner: str, name: str, options: DiscoveryOptions | None = None
    ) -> list[IacFile]:
        result = await self.discover_repository(owner, name, options)
        return result.files

    async def find_all_iac_files(
        self,
        owner: str,
        repo_filter: RepositoryFilter | None = None,
        options: DiscoveryOptions | None = None,
    ) -> DiscoveryResult:
        """Scan every accepted repository of ``owner``.

        A repository that fails is logged and counted; it never aborts the
        run. Failing to list repositories at all does.
        """
        self.logger.info("Starting IaC file discovery for %s", owner)
        repositories = await self.get_repositories(owner, repo_filter)
        result = DiscoveryResult(owner=owner, repositories_total=len(repositories))
        if not repositories:
            self.logger.info("No repositories found for %s", owner)
            return result

        total = len(repositories)

        async def scan(repository: Repository, index: int) -> RepositoryScan:
            self.logger.info(
                "Processing repository %d/%d: %s", index + 1, total, repository.full_name
            )
            return await self.scan_repository(repository, options)

        batch = await process_concurrently_settled(repositories, scan, self.repo_concurrency)
        for repository, outcome, error in zip(repositories, batch.results, batch.errors):
            if error is not None:
                classified = self._classify(error)
                result.repositories_failed += 1
                result.failed_repositories.append(repository.full_name)
                self.logger.error(
                    "Failed to process repository %s (%s)",
                    repository.full_name,
                    classified.kind.value,
                    exc_info=classified,
                )
                continue
            if outcome is not None:
                result.files.extend(outcome.files)
                result.files_failed += outcome.files_failed

        kinds = Counter(item.kind for item in result.files)
        self.logger.info(
            "Completed IaC file discovery: %d files (%d Terraform, %d Terragrunt) across "
            "%d repositories, %d repositories failed, %d files failed",
            len(result.files),
            kinds[IacKind.TERRAFORM],
            kinds[IacKind.TERRAGRUNT],
            result.repositories_total,
            result.repositories_failed,
            result.files_failed,
        )
        return result
