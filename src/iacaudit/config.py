"""Application configuration contract."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from iacaudit.errors import ConfigError
from iacaudit.models import Platform


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(alias="IACAUDIT_ENV", default="dev")
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")

    github_token: str = Field(alias="GITHUB_TOKEN", default="")
    github_api_base_url: str = Field(alias="GITHUB_API_BASE_URL", default="https://api.github.com")
    gitlab_token: str = Field(alias="GITLAB_TOKEN", default="")
    gitlab_base_url: str = Field(alias="GITLAB_BASE_URL", default="https://gitlab.com")
    gitlab_max_pages: int = Field(alias="GITLAB_MAX_PAGES", default=10)
    api_per_page: int = Field(alias="API_PER_PAGE", default=100)
    request_timeout_seconds: float = Field(alias="REQUEST_TIMEOUT_SECONDS", default=30.0)

    repo_concurrency: int = Field(alias="REPO_CONCURRENCY", default=5)
    file_concurrency: int = Field(alias="FILE_CONCURRENCY", default=10)
    max_retries: int = Field(alias="MAX_RETRIES", default=3)
    backoff_base_ms: int = Field(alias="BACKOFF_BASE_MS", default=1000)
    backoff_cap_ms: int = Field(alias="BACKOFF_CAP_MS", default=10000)
    cache_enabled: int = Field(alias="CACHE_ENABLED", default=1)
    skip_archived: int = Field(alias="SKIP_ARCHIVED", default=1)


def validate_settings_for_platform(settings: Settings, platform: Platform) -> None:
    problems: list[str] = []
    if platform is Platform.GITHUB and not settings.github_token.strip():
        problems.append("GITHUB_TOKEN")
    if platform is Platform.GITLAB and not settings.gitlab_token.strip():
        problems.append("GITLAB_TOKEN")
    numeric = {
        "REPO_CONCURRENCY": settings.repo_concurrency,
        "FILE_CONCURRENCY": settings.file_concurrency,
        "MAX_RETRIES": settings.max_retries,
        "API_PER_PAGE": settings.api_per_page,
        "GITLAB_MAX_PAGES": settings.gitlab_max_pages,
    }
    for key, value in numeric.items():
        if value < 1:
            problems.append(f"{key}(must be >= 1)")
    if settings.request_timeout_seconds <= 0:
        problems.append("REQUEST_TIMEOUT_SECONDS(must be > 0)")

    if problems:
        keys = ", ".join(sorted(set(problems)))
        raise ConfigError(f"invalid {platform.value} configuration: {keys}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
