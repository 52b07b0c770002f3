"""Settings loaded from the environment."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dashsync.duration import parse_duration
from dashsync.types import Duration


class Settings(BaseSettings):
    """Runtime configuration. Every field can be set as ``DASHSYNC_<NAME>``."""

    model_config = SettingsConfigDict(env_prefix="DASHSYNC_", extra="ignore")

    api_base_url: str = "http://localhost:5000/api"
    request_timeout: float = 30.0

    cache_ttl: Duration = "30s"
    cache_max_items: int | None = None

    # Sleep after a 429 when the server sends no Retry-After
    rate_limit_backoff: Duration = "1s"
    # Upper bound on a server-sent Retry-After
    max_retry_after: Duration = "1m"
    # Client-side pacing; 0 disables it
    max_requests_per_second: int = 0
    max_requests_per_minute: int = 60

    notification_poll_interval: Duration = "2m"
    notification_min_interval: Duration = "30s"
    activity_poll_interval: Duration = "30s"

    token_storage_key: str = "authToken"
    last_seen_storage_key: str = "activity:lastSeen"
    # JSON file for persisted state; in-memory when unset
    storage_path: str | None = None

    @field_validator(
        "cache_ttl",
        "rate_limit_backoff",
        "max_retry_after",
        "notification_poll_interval",
        "notification_min_interval",
        "activity_poll_interval",
        mode="before",
    )
    @classmethod
    def _check_duration(cls, value: object) -> Duration:
        if isinstance(value, str) and value.isdigit():
            value = int(value)
        if not isinstance(value, (str, int)):
            raise ValueError(f"Invalid duration: {value!r}")
        parse_duration(value)
        return value

    @field_validator("api_base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")
