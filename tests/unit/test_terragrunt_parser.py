import pytest

from iacaudit.extraction import TerragruntParser, derive_module_name
from iacaudit.models import IacFile, IacKind, SourceType

BASIC = """
terraform {
  source = "git::https://github.com/example/terraform-modules.git//vpc?ref=v1.0.0"
}

include {
  path = find_in_parent_folders()
}

inputs = {
  vpc_name = "production"
}
"""

REMOTE_SOURCE = """
terraform {
  source = "tfr:///terraform-aws-modules/rds/aws?version=5.1.0"
}

inputs = {
  identifier = "example-db"
  engine_version = "13.7"
}
"""

MULTIPLE_SOURCES = """
# This file has multiple terraform blocks
terraform {
  source = "git::https://github.com/example/modules.git//vpc?ref=v1.0.0"
}

terraform {
  source = "../modules/security"
}

inputs = {
  environment = "staging"
}
"""

COMPLEX = """
locals {
  environment = "production"
}

terraform {
  source = "git::ssh://git@github.com/company/terraform-modules.git//applications/web-app?ref=v2.1.0"

  extra_arguments "common_vars" {
    commands = ["plan", "apply"]
  }
}
"""

MALFORMED = """
include {
  path = find_in_parent_folders()
}

terraform {
  # No source specified
  extra_arguments "test" {
    commands = ["plan"]
  }
}
"""

EDGE_CASES = """
terraform {
  source = ""
}

terraform {
  source = "   "
}

terraform {
  source = "git::https://github.com/example/modules.git//compute"
}
"""

WITH_COMMENTS = """
# Configuration for production environment
terraform {
  source = "git::https://github.com/example/modules.git//database?ref=v1.0.0" # Database module
}

/*
terraform {
  source = "should-not-be-parsed"
}
*/
"""


def _hcl(content: str, path: str = "live/prod/vpc/terragrunt.hcl") -> IacFile:
    return IacFile(
        kind=IacKind.TERRAGRUNT,
        repository="acme/live",
        path=path,
        content=content,
        url=f"https://gitlab.com/acme/live/-/blob/main/{path}",
    )


def test_basic_terragrunt() -> None:
    (module,) = TerragruntParser().parse_modules([_hcl(BASIC)])
    assert module.name == "vpc"
    assert module.source_type is SourceType.GIT
    assert module.version == "v1.0.0"
    assert module.kind is IacKind.TERRAGRUNT
    assert module.line_number == 2


def test_registry_source_with_version_param() -> None:
    (module,) = TerragruntParser().parse_modules([_hcl(REMOTE_SOURCE, "live/db/terragrunt.hcl")])
    assert module.source_type is SourceType.REGISTRY
    assert module.version == "5.1.0"
    assert module.name == "db"


def test_multiple_blocks_have_distinct_line_numbers() -> None:
    first, second = TerragruntParser().parse_modules([_hcl(MULTIPLE_SOURCES)])
    assert first.line_number == 3
    assert second.line_number == 7
    assert first.source_type is SourceType.GIT
    assert second.source_type is SourceType.LOCAL


def test_nested_block_after_source() -> None:
    (module,) = TerragruntParser().parse_modules([_hcl(COMPLEX)])
    assert module.version == "v2.1.0"
    assert module.source_type is SourceType.GIT


def test_block_without_source_is_skipped() -> None:
    assert TerragruntParser().parse_modules([_hcl(MALFORMED)]) == []


def test_empty_and_blank_sources_are_skipped() -> None:
    (module,) = TerragruntParser().parse_modules([_hcl(EDGE_CASES)])
    assert module.source == "git::https://github.com/example/modules.git//compute"
    assert module.version is None


def test_commented_out_block_still_matches() -> None:
    modules = TerragruntParser().parse_modules([_hcl(WITH_COMMENTS)])
    assert len(modules) == 2
    assert modules[1].source == "should-not-be-parsed"
    assert modules[1].source_type is SourceType.UNKNOWN


def test_version_attribute_is_ignored_for_terragrunt() -> None:
    content = 'terraform {\n  source = "../modules/app"\n  version = "1.0.0"\n}\n'
    (module,) = TerragruntParser().parse_modules([_hcl(content)])
    assert module.version is None


def test_ignores_terraform_files() -> None:
    terraform = IacFile(
        kind=IacKind.TERRAFORM,
        repository="acme/live",
        path="main.tf",
        content='terraform { source = "../x" }',
        url="file:///main.tf",
    )
    assert TerragruntParser().parse_modules([terraform]) == []


@pytest.mark.parametrize(
    ("path", "source", "name"),
    [
        ("live/prod/vpc/terragrunt.hcl", "git::https://x/modules.git//anything", "vpc"),
        ("vpc/terragrunt.hcl", "../modules/vpc", "vpc"),
        ("custom-file.hcl", "git::https://github.com/example/modules.git", "modules"),
        (
            "custom-file.hcl",
            "git::https://github.com/example/modules.git//networking",
            "networking",
        ),
        (
            "custom-file.hcl",
            "git::https://github.com/example/modules.git//networking/vpc?ref=v1.0.0",
            "vpc",
        ),
        ("custom-file.hcl", "git::https://github.com/example/infra.git//", "infra"),
        ("custom-file.hcl", "https://example.com/bundles/network.tar.gz", "network"),
        ("custom-file.hcl", "https://example.com/bundles/network.zip?archive=zip", "network"),
        ("custom-file.hcl", "../modules/database", "database"),
        ("terragrunt.hcl", "database", "database"),
        ("custom-file.hcl", "../modules/", "unknown"),
    ],
)
def test_derive_module_name(path: str, source: str, name: str) -> None:
    assert derive_module_name(path, source) == name
