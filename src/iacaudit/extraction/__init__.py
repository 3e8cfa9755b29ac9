"""Module extraction engine."""

from collections.abc import Iterable

from iacaudit.extraction.base import ModuleParser, classify_source, extract_version
from iacaudit.extraction.filetypes import detect_kind, should_include_file
from iacaudit.extraction.terraform import TerraformParser
from iacaudit.extraction.terragrunt import TerragruntParser, derive_module_name
from iacaudit.models import IacFile, Module


def parse_all_modules(files: Iterable[IacFile]) -> list[Module]:
    """Run every parser over ``files``; each one keeps only its own kind."""
    items = list(files)
    modules: list[Module] = []
    for parser in (TerraformParser(), TerragruntParser()):
        modules.extend(parser.parse_modules(items))
    return modules


__all__ = [
    "ModuleParser",
    "TerraformParser",
    "TerragruntParser",
    "classify_source",
    "derive_module_name",
    "detect_kind",
    "extract_version",
    "parse_all_modules",
    "should_include_file",
]
