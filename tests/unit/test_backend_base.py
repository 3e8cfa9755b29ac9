import re
from collections.abc import AsyncIterator

import httpx
import pytest

from iacaudit.backends.base import SourceBackend
from iacaudit.config import get_settings
from iacaudit.errors import BackendError, ConfigError, ErrorKind
from iacaudit.extraction.filetypes import detect_kind
from iacaudit.models import (
    DiscoveryOptions,
    FileContent,
    IacKind,
    Platform,
    Repository,
    RepositoryFilter,
    TreeEntry,
    Visibility,
)


def _repo(name: str, *, archived: bool = False, private: bool = False) -> Repository:
    return Repository(
        owner="acme",
        name=name,
        full_name=f"acme/{name}",
        default_branch="main",
        archived=archived,
        private=private,
        url=f"https://git.example/acme/{name}",
        clone_url=f"https://git.example/acme/{name}.git",
    )


def _http_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://git.example/api")
    return httpx.HTTPStatusError(
        "failed", request=request, response=httpx.Response(status, request=request)
    )


class FakeBackend(SourceBackend):
    """In-memory backend with scriptable failures."""

    platform = Platform.GITHUB

    def __init__(self, pages, files=None, **kwargs) -> None:
        super().__init__(get_settings(), **kwargs)
        self.pages: list[list[Repository]] = pages
        self.files: dict[str, dict[str, str]] = files or {}
        self.pages_served = 0
        self.fetch_calls: list[str] = []
        self.read_calls: list[str] = []
        self.read_failures: dict[str, list[Exception]] = {}
        self.list_failures: dict[str, Exception] = {}
        self.listing_failure: Exception | None = None

    async def _iter_repositories(self, owner: str) -> AsyncIterator[Repository]:
        if self.listing_failure is not None:
            raise self.listing_failure
        for page in self.pages:
            self.pages_served += 1
            for repository in page:
                yield repository

    async def _fetch_repository(self, owner: str, name: str) -> Repository:
        self.fetch_calls.append(name)
        for page in self.pages:
            for repository in page:
                if repository.name == name:
                    return repository
        raise _http_error(404)

    async def _list_files(self, repository: Repository) -> list[TreeEntry]:
        if repository.full_name in self.list_failures:
            raise self.list_failures[repository.full_name]
        entries = []
        for path in self.files.get(repository.full_name, {}):
            kind = detect_kind(path)
            if kind is not None:
                entries.append(TreeEntry(path=path, kind=kind))
        return entries

    async def _read_file(self, repository: Repository, entry: TreeEntry) -> FileContent:
        key = f"{repository.full_name}:{entry.path}"

        async def request() -> FileContent:
            self.read_calls.append(key)
            failures = self.read_failures.get(key)
            if failures:
                raise failures.pop(0)
            return FileContent.from_bytes(self.files[repository.full_name][entry.path].encode())

        return await self._call(request, f"read {key}")

    def _file_url(self, repository: Repository, path: str) -> str:
        return f"{repository.url}/blob/main/{path}"


@pytest.fixture
def backend(fake_sleep) -> FakeBackend:
    pages = [
        [_repo("infra"), _repo("legacy", archived=True), _repo("app", private=True)],
        [_repo("infra"), _repo("network"), _repo("tools")],
    ]
    files = {
        "acme/infra": {
            "main.tf": 'module "vpc" { source = "terraform-aws-modules/vpc/aws" }',
            "README.md": "# infra",
            "live/terragrunt.hcl": 'terraform { source = "../modules/app" }',
        },
        "acme/network": {"net.tf": 'module "a" { source = "./a" }'},
        "acme/app": {},
        "acme/tools": {"tools.tf": ""},
    }
    return FakeBackend(pages, files, sleep=fake_sleep)


@pytest.mark.asyncio
async def test_listing_dedupes_and_filters(backend: FakeBackend) -> None:
    repositories = await backend.get_repositories("acme")
    assert [repo.name for repo in repositories] == ["infra", "app", "network", "tools"]


@pytest.mark.asyncio
async def test_listing_applies_name_and_visibility(backend: FakeBackend) -> None:
    repo_filter = RepositoryFilter(
        name_pattern=re.compile(r"^(app|network|legacy)$"), visibility=Visibility.PUBLIC
    )
    repositories = await backend.get_repositories("acme", repo_filter)
    assert [repo.name for repo in repositories] == ["network"]

    including_archived = await backend.get_repositories(
        "acme", RepositoryFilter(skip_archived=False, visibility=Visibility.PUBLIC)
    )
    assert "legacy" in [repo.name for repo in including_archived]


@pytest.mark.asyncio
async def test_listing_truncates_exactly_and_stops_paging(backend: FakeBackend) -> None:
    repositories = await backend.get_repositories("acme", RepositoryFilter(max_repositories=2))
    assert [repo.name for repo in repositories] == ["infra", "app"]
    assert backend.pages_served == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("owner", ["", "   "])
async def test_invalid_owner_is_fatal(backend: FakeBackend, owner: str) -> None:
    with pytest.raises(ConfigError):
        await backend.get_repositories(owner)
    with pytest.raises(ConfigError):
        await backend.find_all_iac_files(owner)


@pytest.mark.asyncio
async def test_listing_failure_is_classified_and_raised(backend: FakeBackend) -> None:
    backend.listing_failure = _http_error(401)
    with pytest.raises(BackendError) as exc:
        await backend.find_all_iac_files("acme")
    assert exc.value.kind is ErrorKind.AUTHENTICATION_FAILED


@pytest.mark.asyncio
async def test_repository_exists(backend: FakeBackend) -> None:
    assert await backend.repository_exists("acme", "infra") is True
    assert await backend.repository_exists("acme", "legacy") is None
    assert await backend.repository_exists("acme", "missing") is False


@pytest.mark.asyncio
async def test_lookups_are_cached_including_absence(backend: FakeBackend) -> None:
    assert await backend.get_repository("acme", "missing") is None
    assert await backend.get_repository("acme", "missing") is None
    assert await backend.repository_exists("acme", "missing") is False
    assert (await backend.get_repository("acme", "infra")).name == "infra"
    assert await backend.repository_exists("acme", "infra") is True
    assert backend.fetch_calls == ["missing", "infra"]


@pytest.mark.asyncio
async def test_cache_disabled_refetches(monkeypatch: pytest.MonkeyPatch, fake_sleep) -> None:
    monkeypatch.setenv("CACHE_ENABLED", "0")
    get_settings.cache_clear()
    backend = FakeBackend([[_repo("infra")]], sleep=fake_sleep)
    await backend.get_repository("acme", "infra")
    await backend.get_repository("acme", "infra")
    assert backend.fetch_calls == ["infra", "infra"]


@pytest.mark.asyncio
async def test_archived_repository_is_excluded_from_lookup(backend: FakeBackend) -> None:
    assert await backend.get_repository("acme", "legacy") is None
    assert await backend.find_iac_files_for_repository("acme", "legacy") == []
    assert await backend.find_iac_files_for_repository("acme", "missing") == []


@pytest.mark.asyncio
async def test_lookup_errors_other_than_not_found_propagate(backend: FakeBackend) -> None:
    async def boom(owner: str, name: str) -> Repository:
        raise _http_error(403)

    backend._fetch_repository = boom  # type: ignore[method-assign]
    with pytest.raises(BackendError) as exc:
        await backend.repository_exists("acme", "infra")
    assert exc.value.kind is ErrorKind.AUTHORIZATION_FAILED


@pytest.mark.asyncio
async def test_scan_filters_and_builds_files(backend: FakeBackend) -> None:
    repository = _repo("infra")
    files = await backend.find_iac_files_in_repository(repository)
    assert sorted(item.path for item in files) == ["live/terragrunt.hcl", "main.tf"]
    main = next(item for item in files if item.path == "main.tf")
    assert main.kind is IacKind.TERRAFORM
    assert main.repository == "acme/infra"
    assert main.url == "https://git.example/acme/infra/blob/main/main.tf"

    only_terragrunt = await backend.find_iac_files_in_repository(
        repository, DiscoveryOptions(kinds=frozenset({IacKind.TERRAGRUNT}))
    )
    assert [item.path for item in only_terragrunt] == ["live/terragrunt.hcl"]


@pytest.mark.asyncio
async def test_scan_truncates_at_max_files(backend: FakeBackend) -> None:
    files = await backend.find_iac_files_in_repository(
        _repo("infra"), DiscoveryOptions(max_files=1)
    )
    assert len(files) == 1


@pytest.mark.asyncio
async def test_transient_read_failure_is_retried(backend: FakeBackend, sleeps) -> None:
    backend.read_failures["acme/infra:main.tf"] = [_http_error(503)]
    scan = await backend.scan_repository(_repo("infra"))
    assert scan.files_failed == 0
    assert len(scan.files) == 2
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_final_read_failure_drops_only_that_file(backend: FakeBackend, sleeps) -> None:
    backend.read_failures["acme/infra:main.tf"] = [_http_error(404)]
    scan = await backend.scan_repository(_repo("infra"))
    assert [item.path for item in scan.files] == ["live/terragrunt.hcl"]
    assert scan.files_failed == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_bad_repository_degrades_but_does_not_abort(backend: FakeBackend) -> None:
    backend.list_failures["acme/network"] = _http_error(500)
    backend.read_failures["acme/infra:main.tf"] = [_http_error(404)]
    result = await backend.find_all_iac_files("acme")
    assert result.repositories_total == 4
    assert result.repositories_failed == 1
    assert result.repositories_scanned == 3
    assert result.failed_repositories == ["acme/network"]
    assert result.files_failed == 1
    assert result.partial is True
    assert sorted(item.path for item in result.files) == ["live/terragrunt.hcl", "tools.tf"]


@pytest.mark.asyncio
async def test_no_repositories_means_empty_result(fake_sleep) -> None:
    backend = FakeBackend([[]], sleep=fake_sleep)
    result = await backend.find_all_iac_files("acme")
    assert result.files == []
    assert result.repositories_total == 0
    assert result.partial is False


@pytest.mark.asyncio
async def test_exhausted_read_is_attempted_max_retries_times(
    backend: FakeBackend, sleeps
) -> None:
    backend.read_failures["acme/infra:main.tf"] = [_http_error(503) for _ in range(10)]
    scan = await backend.scan_repository(_repo("infra"))
    assert backend.read_calls.count("acme/infra:main.tf") == 3
    assert sleeps == [1.0, 2.0]
    assert scan.files_failed == 1


@pytest.mark.asyncio
async def test_lookup_is_attempted_once_per_call(backend: FakeBackend, sleeps) -> None:
    calls = 0

    async def flaky(owner: str, name: str) -> Repository:
        nonlocal calls
        calls += 1
        raise _http_error(503)

    backend._fetch_repository = flaky  # type: ignore[method-assign]
    with pytest.raises(BackendError) as exc:
        await backend.get_repository("acme", "infra")
    assert exc.value.kind is ErrorKind.PLATFORM_ERROR
    assert calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_scan_leaves_tree_entries_untouched(backend: FakeBackend) -> None:
    entries = await backend._list_files(_repo("infra"))

    async def listed(repository: Repository) -> list[TreeEntry]:
        return entries

    backend._list_files = listed  # type: ignore[method-assign]
    files = await backend.find_iac_files_in_repository(_repo("infra"))
    by_path = {item.path: item for item in files}
    assert by_path["main.tf"].size == len(by_path["main.tf"].content.encode())
    assert all(entry.size is None for entry in entries)


@pytest.mark.asyncio
async def test_discover_named_repository_counts_failed_files(backend: FakeBackend) -> None:
    backend.read_failures["acme/infra:main.tf"] = [_http_error(404)]
    result = await backend.discover_repository("acme", "infra")
    assert result.repositories_total == 1
    assert result.files_failed == 1
    assert result.partial is True
    assert [item.path for item in result.files] == ["live/terragrunt.hcl"]

    missing = await backend.discover_repository("acme", "missing")
    assert missing.repositories_total == 0
    assert missing.files == []
    assert missing.partial is False


def test_file_content_replaces_invalid_utf8() -> None:
    content = FileContent.from_bytes(b'module "x" { source = "./\xff" }')
    assert content.text == 'module "x" { source = "./\ufffd" }'
    assert content.size == 29
