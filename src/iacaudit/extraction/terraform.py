"""Terraform ``module "<name>" { ... }`` scanner."""

from __future__ import annotations

import re

from iacaudit.extraction.base import VERSION_ATTR_RE, ModuleParser, line_number_at
from iacaudit.models import IacFile, IacKind, Module

MODULE_BLOCK_RE = re.compile(r'module\s+"([^"]+)"\s+\{([\s\S]*?)\}')


class TerraformParser(ModuleParser):
    kind = IacKind.TERRAFORM

    def extract_modules(self, item: IacFile) -> list[Module]:
        content = item.content
        modules: list[Module] = []
        for match in MODULE_BLOCK_RE.finditer(content):
            name, block = match.group(1), match.group(2)
            source = self._read_source(block, item, f'Module "{name}"')
            if source is None:
                continue
            version_match = VERSION_ATTR_RE.search(block)
            modules.append(
                self._build(
                    item,
                    name=name,
                    source=source,
                    line_number=line_number_at(content, match.start()),
                    version_attribute=version_match.group(1) if version_match else None,
                )
            )
        return modules
