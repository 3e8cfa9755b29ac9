"""End-to-end audit: discover files, extract modules, summarize."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from iacaudit.backends.base import SourceBackend
from iacaudit.errors import ConfigError
from iacaudit.extraction import parse_all_modules
from iacaudit.logging import log_context
from iacaudit.models import (
    ALL_KINDS,
    DiscoveryOptions,
    DiscoveryResult,
    IacKind,
    Module,
    ModuleSummary,
    NormalizedModuleSummary,
    RepositoryFilter,
    SourceType,
    Visibility,
)
from iacaudit.summary import (
    count_by_source_type,
    create_module_summary,
    create_normalized_summary,
    sort_modules_by_source,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuditReport:
    modules: list[Module] = field(default_factory=list)
    summary: dict[str, ModuleSummary] = field(default_factory=dict)
    normalized_summary: dict[str, NormalizedModuleSummary] = field(default_factory=dict)
    discovery: DiscoveryResult | None = None
    modules_by_source_type: dict[SourceType, int] = field(default_factory=dict)


def compile_pattern(value: str, label: str) -> re.Pattern[str]:
    try:
        return re.compile(value)
    except re.error as exc:
        raise ConfigError(f"Invalid {label} pattern {value!r}: {exc}") from exc


def repository_filter(
    *,
    skip_archived: bool = True,
    name_pattern: str | None = None,
    visibility: Visibility | str = Visibility.ALL,
    max_repositories: int | None = None,
) -> RepositoryFilter:
    """Build a RepositoryFilter from plain values, failing fast on bad input."""
    try:
        resolved_visibility = Visibility(visibility)
    except ValueError as exc:
        raise ConfigError(f"Invalid visibility: {visibility}") from exc
    return RepositoryFilter(
        skip_archived=skip_archived,
        name_pattern=compile_pattern(name_pattern, "repository name") if name_pattern else None,
        visibility=resolved_visibility,
        max_repositories=max_repositories,
    )


def discovery_options(
    *,
    kinds: Iterable[IacKind | str] | None = None,
    max_files: int | None = None,
    exclude: Iterable[str] = (),
    include: Iterable[str] = (),
) -> DiscoveryOptions:
    try:
        resolved_kinds = frozenset(IacKind(kind) for kind in kinds) if kinds else ALL_KINDS
    except ValueError as exc:
        raise ConfigError(f"Invalid file kind: {exc}") from exc
    return DiscoveryOptions(
        kinds=resolved_kinds,
        max_files=max_files,
        exclude_patterns=tuple(compile_pattern(item, "exclude") for item in exclude),
        include_patterns=tuple(compile_pattern(item, "include") for item in include),
    )


async def run_audit(
    backend: SourceBackend,
    owner: str,
    repository: str | None = None,
    repo_filter: RepositoryFilter | None = None,
    options: DiscoveryOptions | None = None,
) -> AuditReport:
    """Audit every repository of ``owner``, or only ``repository`` when given.

    Returns sorted modules together with the raw and normalized summaries.
    Rendering is left to the caller.
    """
    with log_context(platform=backend.platform.value, owner=owner):
        if repository:
            discovery = await backend.discover_repository(owner, repository, options)
        else:
            discovery = await backend.find_all_iac_files(owner, repo_filter, options)

        modules = sort_modules_by_source(parse_all_modules(discovery.files))
        report = AuditReport(
            modules=modules,
            summary=create_module_summary(modules),
            normalized_summary=create_normalized_summary(modules),
            discovery=discovery,
            modules_by_source_type=count_by_source_type(modules),
        )
        logger.info(
            "Audit of %s found %d modules (%d unique sources) in %d files%s",
            owner,
            len(modules),
            len(report.normalized_summary),
            len(discovery.files),
            " (partial results)" if discovery.partial else "",
        )
        return report
