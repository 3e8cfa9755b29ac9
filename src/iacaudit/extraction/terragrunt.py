"""Terragrunt ``terraform { source = ... }`` scanner."""

from __future__ import annotations

import re

from iacaudit.extraction.base import ModuleParser, line_number_at
from iacaudit.models import IacFile, IacKind, Module

TERRAFORM_BLOCK_RE = re.compile(r"terraform\s*\{([\s\S]*?)\}")
UNIT_DIR_RE = re.compile(r"(?:^|/)([^/]+)/terragrunt\.hcl$")
NAME_SUFFIX_RE = re.compile(r"\.(git|tar\.gz|zip)$")

UNKNOWN_NAME = "unknown"


def derive_module_name(file_path: str, source: str) -> str:
    """Name a Terragrunt unit after its directory, falling back to its source.

    Order: the directory holding ``terragrunt.hcl``; the last segment after
    the final ``//`` of the source (or the repository before it when nothing
    follows); the last path segment; ``unknown``.
    """
    unit_dir = UNIT_DIR_RE.search(file_path)
    if unit_dir:
        return unit_dir.group(1)

    clean = source.split("?", 1)[0]
    marker = clean.rfind("//")
    if marker != -1:
        segments = [part for part in clean[marker + 2 :].split("/") if part.strip()]
        if segments:
            return NAME_SUFFIX_RE.sub("", segments[-1]) or UNKNOWN_NAME
        repo_name = clean[:marker].rsplit("/", 1)[-1]
        return NAME_SUFFIX_RE.sub("", repo_name) or UNKNOWN_NAME

    last = clean.rsplit("/", 1)[-1]
    if not last.strip():
        return UNKNOWN_NAME
    return NAME_SUFFIX_RE.sub("", last) or UNKNOWN_NAME


class TerragruntParser(ModuleParser):
    kind = IacKind.TERRAGRUNT

    def extract_modules(self, item: IacFile) -> list[Module]:
        content = item.content
        modules: list[Module] = []
        for match in TERRAFORM_BLOCK_RE.finditer(content):
            source = self._read_source(match.group(1), item, "Terraform block")
            if source is None:
                continue
            modules.append(
                self._build(
                    item,
                    name=derive_module_name(item.path, source),
                    source=source,
                    line_number=line_number_at(content, match.start()),
                )
            )
        return modules
