"""Backend construction helpers."""

from typing import Any

from iacaudit.backends.base import SourceBackend
from iacaudit.backends.github import GitHubBackend
from iacaudit.backends.gitlab import GitLabBackend
from iacaudit.backends.local import LocalBackend
from iacaudit.config import Settings, get_settings, validate_settings_for_platform
from iacaudit.errors import ConfigError
from iacaudit.models import Platform

_BACKENDS: dict[Platform, type[SourceBackend]] = {
    Platform.GITHUB: GitHubBackend,
    Platform.GITLAB: GitLabBackend,
    Platform.LOCAL: LocalBackend,
}


def supported_platforms() -> list[Platform]:
    return list(_BACKENDS)


def build_backend(
    platform: Platform | str, settings: Settings | None = None, **overrides: Any
) -> SourceBackend:
    try:
        resolved = Platform(platform)
    except ValueError as exc:
        raise ConfigError(f"Unknown platform: {platform}") from exc
    backend_cls = _BACKENDS.get(resolved)
    if backend_cls is None:
        supported = ", ".join(item.value for item in _BACKENDS)
        raise ConfigError(
            f"Platform {resolved.value} is not yet supported. Supported platforms: {supported}"
        )
    settings = settings or get_settings()
    if "token" not in overrides:
        validate_settings_for_platform(settings, resolved)
    return backend_cls(settings, **overrides)
