from collections.abc import Awaitable, Callable

import pytest

from iacaudit.config import get_settings

_ENV_KEYS = (
    "IACAUDIT_ENV",
    "LOG_LEVEL",
    "GITHUB_TOKEN",
    "GITHUB_API_BASE_URL",
    "GITLAB_TOKEN",
    "GITLAB_BASE_URL",
    "GITLAB_MAX_PAGES",
    "API_PER_PAGE",
    "REQUEST_TIMEOUT_SECONDS",
    "REPO_CONCURRENCY",
    "FILE_CONCURRENCY",
    "MAX_RETRIES",
    "BACKOFF_BASE_MS",
    "BACKOFF_CAP_MS",
    "CACHE_ENABLED",
    "SKIP_ARCHIVED",
)


@pytest.fixture(autouse=True)
def test_env(tmp_path, monkeypatch: pytest.MonkeyPatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]) -> Callable[[float], Awaitable[None]]:
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep
