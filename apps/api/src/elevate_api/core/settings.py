from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_LEARN_TAGS = ["elevate-ai-1-completed", "elevate-ai-2-completed"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./elevate.db"
    secret_key: str = "change-me"

    # Internal API security (admin console -> API)
    admin_api_key: str = ""

    # Amplify approval quotas
    org_timezone: str = "Asia/Jakarta"
    amplify_peers_per_7d: int = 50
    amplify_students_per_7d: int = 200
    amplify_duplicate_window_minutes: int = 45

    # Kajabi webhook ingestion
    kajabi_learn_tags: Annotated[list[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_LEARN_TAGS))
    kajabi_webhook_secret: str = ""
    kajabi_allow_unsigned_webhook: bool = False
    kajabi_webhook_max_skew_seconds: int = 300
    kajabi_replay_batch_size: int = 50

    @field_validator("kajabi_learn_tags", mode="before")
    @classmethod
    def _parse_learn_tags(cls, value: object) -> list[str]:
        if value is None:
            return list(DEFAULT_LEARN_TAGS)
        if isinstance(value, str):
            items = [item.strip().lower() for item in value.split(",") if item.strip()]
        elif isinstance(value, (list, tuple, set)):
            items = [str(item).strip().lower() for item in value if str(item).strip()]
        else:
            items = []
        return items or list(DEFAULT_LEARN_TAGS)

    # Kajabi API (enrollment + offers)
    kajabi_api_key: str | None = None
    kajabi_client_secret: str | None = None
    kajabi_base_url: str = "https://api.kajabi.com"
    kajabi_offer_id: str | None = None
    kajabi_timeout_seconds: float = 10.0

    @property
    def allowed_learn_tags(self) -> frozenset[str]:
        return frozenset(self.kajabi_learn_tags)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
