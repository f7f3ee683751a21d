from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BACKOFFICE_",
    )

    app_name: str = "Backoffice"
    environment: str = "local"
    log_level: str = "INFO"

    api_base_url: str = "http://localhost:5180/api"
    api_timeout: float = 5.0
    # Transport-level retry for idempotent reads only
    retry_max_attempts: int = 1
    retry_backoff_initial: float = 0.5
    retry_backoff_max: float = 8.0

    access_token: str | None = None
    dialog_close_delay: float = 1.5
    dishes_page_size: int = 50
    orders_page_size: int = 10
    unpaid_page_size: int = 2

    sentry_dsn: str | None = None
    sentry_environment: str | None = None


settings = Settings()
