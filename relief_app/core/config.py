from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "South Lebanon Aid - Case Intake"
    environment: str = "dev"
    log_level: str = "INFO"
    log_json: bool = True

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str
    database_echo: bool = False
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # ─────────── JWT / AUTH ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # ─────────── CASES ───────────
    case_id_prefix: str = "SLA"
    decision_comment_min_length: int = 10
    decision_comment_max_length: int = 1000
    public_page_size_max: int = 100

    # ─────────── NOTIFICATIONS ───────────
    # off: state changes are not announced at all (not even logged as notices)
    notifications_enabled: bool = True

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
