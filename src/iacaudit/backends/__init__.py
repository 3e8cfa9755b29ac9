"""Repository and file discovery backends."""

from iacaudit.backends.base import SourceBackend
from iacaudit.backends.factory import build_backend, supported_platforms
from iacaudit.backends.github import GitHubBackend
from iacaudit.backends.gitlab import GitLabBackend
from iacaudit.backends.local import LocalBackend

__all__ = [
    "GitHubBackend",
    "GitLabBackend",
    "LocalBackend",
    "SourceBackend",
    "build_backend",
    "supported_platforms",
]
