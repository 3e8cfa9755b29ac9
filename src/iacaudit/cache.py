"""Per-backend memo of repository lookups.

Entries live for the lifetime of the backend instance; there is no expiry.
A stored ``None`` means the repository is known to be absent or excluded,
which is distinct from a cache miss.
"""

from __future__ import annotations

from typing import Final
from urllib.parse import quote

from iacaudit.models import Repository


class _Miss:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS: Final = _Miss()


def make_cache_key(platform: str, operation: str, owner: str, *parts: str) -> str:
    """Join key components with ``:`` after percent-encoding each one."""
    return ":".join(quote(part, safe="-_.") for part in (platform, operation, owner, *parts))


class RepositoryCache:
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._entries: dict[str, Repository | None] = {}

    def get(self, key: str) -> Repository | None | _Miss:
        if not self.enabled:
            return MISS
        return self._entries.get(key, MISS)

    def set(self, key: str, repository: Repository | None) -> None:
        if self.enabled:
            self._entries[key] = repository

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
