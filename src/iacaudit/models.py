"""Types shared by the discovery pipeline, the extraction engine and summaries."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum


class Platform(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    LOCAL = "local"


class IacKind(str, Enum):
    TERRAFORM = "terraform"
    TERRAGRUNT = "terragrunt"


class SourceType(str, Enum):
    LOCAL = "local"
    REGISTRY = "registry"
    GIT = "git"
    ARCHIVE = "archive"
    ARTIFACTORY = "artifactory"
    UNKNOWN = "unknown"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    ALL = "all"


ALL_KINDS: frozenset[IacKind] = frozenset(IacKind)


@dataclass(frozen=True, slots=True)
class Repository:
    owner: str
    name: str
    full_name: str
    default_branch: str
    archived: bool
    private: bool
    url: str
    clone_url: str

    @property
    def visibility(self) -> Visibility:
        return Visibility.PRIVATE if self.private else Visibility.PUBLIC


@dataclass(slots=True)
class IacFile:
    kind: IacKind
    repository: str
    path: str
    content: str
    url: str
    sha: str | None = None
    size: int | None = None


@dataclass(frozen=True, slots=True)
class Module:
    name: str
    source: str
    source_type: SourceType
    version: str | None
    repository: str
    file_path: str
    file_url: str
    line_number: int
    kind: IacKind


@dataclass(frozen=True, slots=True)
class RepositoryFilter:
    skip_archived: bool = True
    name_pattern: re.Pattern[str] | None = None
    visibility: Visibility = Visibility.ALL
    max_repositories: int | None = None

    def accepts(self, repository: Repository) -> bool:
        if self.skip_archived and repository.archived:
            return False
        if self.name_pattern is not None and not self.name_pattern.search(repository.name):
            return False
        if self.visibility is not Visibility.ALL and repository.visibility is not self.visibility:
            return False
        return True


@dataclass(frozen=True, slots=True)
class DiscoveryOptions:
    kinds: frozenset[IacKind] = ALL_KINDS
    max_files: int | None = None
    exclude_patterns: tuple[re.Pattern[str], ...] = ()
    include_patterns: tuple[re.Pattern[str], ...] = ()


@dataclass(slots=True)
class TreeEntry:
    """A file discovered in a repository tree, before its content is fetched."""

    path: str
    kind: IacKind
    sha: str | None = None
    size: int | None = None


@dataclass(frozen=True, slots=True)
class FileContent:
    """Text of one fetched file plus its size in bytes, when the platform reports it."""

    text: str
    size: int | None = None

    @classmethod
    def from_bytes(cls, data: bytes) -> FileContent:
        # invalid UTF-8 is replaced so one odd byte never drops a whole file
        return cls(text=data.decode("utf-8", errors="replace"), size=len(data))


@dataclass(slots=True)
class RepositoryScan:
    repository: str
    files: list[IacFile] = field(default_factory=list)
    files_failed: int = 0


@dataclass(slots=True)
class DiscoveryResult:
    owner: str
    files: list[IacFile] = field(default_factory=list)
    repositories_total: int = 0
    repositories_failed: int = 0
    files_failed: int = 0
    failed_repositories: list[str] = field(default_factory=list)

    @property
    def repositories_scanned(self) -> int:
        return self.repositories_total - self.repositories_failed

    @property
    def partial(self) -> bool:
        return self.repositories_failed > 0 or self.files_failed > 0


@dataclass(slots=True)
class ModuleSummary:
    count: int = 0
    versions: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class NormalizedModuleSummary:
    source_type: SourceType
    count: int = 0
    versions: dict[str, int] = field(default_factory=dict)
