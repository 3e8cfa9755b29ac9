"""Parse ``platform:identifier[/repo]`` scan targets."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from iacaudit.errors import ConfigError
from iacaudit.models import Platform

PLATFORM_ALIASES: dict[str, Platform] = {
    "github": Platform.GITHUB,
    "gh": Platform.GITHUB,
    "gitlab": Platform.GITLAB,
    "gl": Platform.GITLAB,
    "bitbucket": Platform.BITBUCKET,
    "bb": Platform.BITBUCKET,
    "local": Platform.LOCAL,
    "file": Platform.LOCAL,
    "fs": Platform.LOCAL,
}

_DISPLAY_NAMES = {
    Platform.GITHUB: "GitHub",
    Platform.GITLAB: "GitLab",
    Platform.BITBUCKET: "Bitbucket",
    Platform.LOCAL: "Local Filesystem",
}

OWNER_RE = re.compile(r"^[A-Za-z0-9._-]+$")
REPOSITORY_RE = re.compile(r"^[A-Za-z0-9._/-]+$")


@dataclass(frozen=True, slots=True)
class ScanTarget:
    platform: Platform
    owner: str
    repository: str | None
    original: str


def parse_target(value: str) -> ScanTarget:
    """Parse a scan target such as ``github:myorg/infra`` or ``local:./envs``.

    Local identifiers are resolved to absolute paths; hosted identifiers are
    split into an owner and an optional repository path.
    """
    if not isinstance(value, str) or not value:
        raise ConfigError("Target must be a non-empty string")
    prefix, sep, remainder = value.partition(":")
    if not sep:
        raise ConfigError(
            f'Invalid target "{value}". Expected platform:identifier '
            "(e.g. github:myorg, local:/path/to/dir)"
        )
    platform = PLATFORM_ALIASES.get(prefix.lower())
    if platform is None:
        supported = ", ".join(PLATFORM_ALIASES)
        raise ConfigError(f'Unsupported platform "{prefix}". Supported platforms: {supported}')
    if not remainder:
        raise ConfigError(f'Missing identifier after "{prefix}:"')

    if platform is Platform.LOCAL:
        resolved = str(Path(remainder).expanduser().resolve())
        return ScanTarget(platform=platform, owner=resolved, repository=None, original=value)

    owner, _, repository = remainder.partition("/")
    if not OWNER_RE.match(owner):
        raise ConfigError(
            f'Invalid {platform.value} identifier "{owner}". Use letters, digits, '
            "dots, hyphens and underscores only."
        )
    if repository and not REPOSITORY_RE.match(repository):
        raise ConfigError(
            f'Invalid {platform.value} repository "{repository}". Use letters, digits, '
            "dots, hyphens, underscores and slashes only."
        )
    return ScanTarget(
        platform=platform, owner=owner, repository=repository or None, original=value
    )


def platform_display_name(platform: Platform) -> str:
    return _DISPLAY_NAMES.get(platform, platform.value)
