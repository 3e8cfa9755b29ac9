"""Classify repository paths as Terraform or Terragrunt files."""

from __future__ import annotations

from collections.abc import Iterable

from iacaudit.models import DiscoveryOptions, IacKind

TERRAFORM_EXTENSIONS = (".tf", ".tfvars")
TERRAGRUNT_EXTENSION = ".hcl"
TERRAFORM_LOCK_FILE = ".terraform.lock.hcl"


def detect_kind(path: str) -> IacKind | None:
    filename = path.rsplit("/", 1)[-1]
    if path.endswith(TERRAFORM_EXTENSIONS):
        return IacKind.TERRAFORM
    if filename == TERRAFORM_LOCK_FILE:
        return IacKind.TERRAFORM
    if path.endswith(TERRAGRUNT_EXTENSION):
        return IacKind.TERRAGRUNT
    return None


def kind_allowed(path: str, kinds: Iterable[IacKind] | None = None) -> bool:
    kind = detect_kind(path)
    if kind is None:
        return False
    allowed = set(kinds or ())
    return not allowed or kind in allowed


def should_include_file(path: str, options: DiscoveryOptions | None = None) -> bool:
    """Apply kind, exclude and include filters, in that order."""
    if options is None:
        return detect_kind(path) is not None
    if not kind_allowed(path, options.kinds):
        return False
    if any(pattern.search(path) for pattern in options.exclude_patterns):
        return False
    if options.include_patterns and not any(
        pattern.search(path) for pattern in options.include_patterns
    ):
        return False
    return True
