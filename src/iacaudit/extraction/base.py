"""Shared machinery for the regex-based module scanners.

The scanners are deliberately shallow: a block ends at the first closing
brace after its opening, and comments are not understood, so a commented-out
block is still reported.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable

from iacaudit.models import IacFile, IacKind, Module, SourceType

SOURCE_ATTR_RE = re.compile(r'\bsource\s*=\s*"([^"]+)"')
VERSION_ATTR_RE = re.compile(r'\bversion\s*=\s*"([^"]+)"')
VERSION_PARAM_RE = re.compile(r"[?&]version=([^&]+)")
REF_PARAM_RE = re.compile(r"[?&]ref=([^&]+)")
REGISTRY_SHAPE_RE = re.compile(r"^[^/]+/[^/]+/[^/]+")

LOCAL_PREFIXES = ("./", "../", "/")
ARCHIVE_SUFFIXES = (".tar.gz", ".zip")
ARTIFACTORY_MARKERS = ("jfrog.io",)
REGISTRY_MARKERS = ("terraform-aws-modules", ".terraform.io")
GIT_MARKERS = ("git::", "github.com", "gitlab.com")


def classify_source(source: str) -> SourceType:
    """Classify a module source string; the first matching rule wins."""
    if source.startswith(LOCAL_PREFIXES):
        return SourceType.LOCAL
    artifactory = any(marker in source for marker in ARTIFACTORY_MARKERS)
    if artifactory and not source.endswith(ARCHIVE_SUFFIXES):
        return SourceType.ARTIFACTORY
    if source.endswith(ARCHIVE_SUFFIXES) or (
        artifactory and any(suffix in source for suffix in ARCHIVE_SUFFIXES)
    ):
        return SourceType.ARCHIVE
    if REGISTRY_SHAPE_RE.match(source) or any(marker in source for marker in REGISTRY_MARKERS):
        return SourceType.REGISTRY
    if any(marker in source for marker in GIT_MARKERS):
        return SourceType.GIT
    return SourceType.UNKNOWN


def extract_version(source: str, version_attribute: str | None = None) -> str | None:
    if version_attribute:
        return version_attribute
    match = VERSION_PARAM_RE.search(source) or REF_PARAM_RE.search(source)
    return match.group(1) if match else None


def line_number_at(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


class ModuleParser(ABC):
    """Scan files of one kind and collect their module declarations."""

    kind: IacKind

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.kind.value}")

    def parse_modules(self, files: Iterable[IacFile]) -> list[Module]:
        selected = [item for item in files if item.kind is self.kind]
        self.logger.info("Parsing %d %s files for modules", len(selected), self.kind.value)
        modules: list[Module] = []
        for item in selected:
            try:
                found = self.extract_modules(item)
            except Exception as exc:
                self.logger.error(
                    "Error parsing file %s in %s", item.path, item.repository, exc_info=exc
                )
                continue
            self.logger.debug(
                "Found %d modules in %s (%s)", len(found), item.path, item.repository
            )
            modules.extend(found)
        self.logger.info(
            "Extracted %d modules from all %s files", len(modules), self.kind.value
        )
        return modules

    @abstractmethod
    def extract_modules(self, item: IacFile) -> list[Module]: ...

    def _read_source(self, block: str, item: IacFile, label: str) -> str | None:
        match = SOURCE_ATTR_RE.search(block)
        if match is None:
            self.logger.debug("%s in %s has no source - skipping", label, item.path)
            return None
        source = match.group(1).strip()
        if not source:
            self.logger.debug("%s in %s has empty source - skipping", label, item.path)
            return None
        return source

    def _build(
        self,
        item: IacFile,
        *,
        name: str,
        source: str,
        line_number: int,
        version_attribute: str | None = None,
    ) -> Module:
        return Module(
            name=name,
            source=source,
            source_type=classify_source(source),
            version=extract_version(source, version_attribute),
            repository=item.repository,
            file_path=item.path,
            file_url=item.url,
            line_number=line_number,
            kind=self.kind,
        )
