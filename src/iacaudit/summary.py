"""Summaries, source normalization and the deterministic module order."""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable

from iacaudit.models import Module, ModuleSummary, NormalizedModuleSummary, SourceType

# (pattern, replacement, max substitutions; 0 means all)
_PINNING_PATTERNS = tuple(
    (re.compile(pattern), replacement, count)
    for name in ("ref", "version")
    for pattern, replacement, count in (
        (rf"\?{name}=[^&]*&", "?", 1),
        (rf"\?{name}=[^&]*$", "", 1),
        (rf"&{name}=[^&]*", "", 0),
    )
)
_TRAILING_SEPARATORS_RE = re.compile(r"[?&]+$")


def create_module_summary(modules: Iterable[Module]) -> dict[str, ModuleSummary]:
    """Group modules by their exact source string."""
    summary: dict[str, ModuleSummary] = {}
    for module in modules:
        entry = summary.setdefault(module.source, ModuleSummary())
        _count(entry, module)
    return summary


def normalize_module_source(source: str) -> str:
    """Strip ``ref=`` and ``version=`` query parameters from a module source.

    Sources are not parsed as URLs since Terraform allows forms such as
    ``git::ssh://...`` and registry paths without a scheme.
    """
    normalized = source
    for pattern, replacement, count in _PINNING_PATTERNS:
        normalized = pattern.sub(replacement, normalized, count=count)
    return _TRAILING_SEPARATORS_RE.sub("", normalized)


def create_normalized_summary(
    modules: Iterable[Module],
) -> dict[str, NormalizedModuleSummary]:
    """Group modules by normalized source so differently pinned copies aggregate.

    The source type recorded for an entry is the one of the first module seen.
    """
    summary: dict[str, NormalizedModuleSummary] = {}
    for module in modules:
        key = normalize_module_source(module.source)
        entry = summary.get(key)
        if entry is None:
            entry = summary[key] = NormalizedModuleSummary(source_type=module.source_type)
        _count(entry, module)
    return summary


def count_by_source_type(modules: Iterable[Module]) -> dict[SourceType, int]:
    return dict(Counter(module.source_type for module in modules))


def _sort_key(module: Module) -> tuple[str, bool, str, str, str, int]:
    return (
        module.source,
        module.version is None,
        module.version or "",
        module.repository,
        module.file_path,
        module.line_number,
    )


def sort_modules_by_source(modules: Iterable[Module]) -> list[Module]:
    """Return a new list ordered by source, version, repository, path and line.

    Versioned modules come before unversioned ones for the same source.
    """
    return sorted(modules, key=_sort_key)


def _count(entry: ModuleSummary | NormalizedModuleSummary, module: Module) -> None:
    entry.count += 1
    if module.version:
        entry.versions[module.version] = entry.versions.get(module.version, 0) + 1
