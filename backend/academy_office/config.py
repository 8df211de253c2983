from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Academy Back-Office API"
    app_version: str = "0.1.0"
    frontend_url: str = "http://localhost:3000"
    database_url: str = "sqlite:///./local.db"
    redis_url: str = "redis://localhost:6379/0"
    redis_timeout_seconds: float = 0.5
    log_level: str = "INFO"
    log_json: bool = False

    active_semester_name: str = "Spring 2026"
    payment_lock_ttl_seconds: int = 10
    outstanding_cache_ttl_seconds: int = 120

    lunch_semester_price: Decimal = Decimal("40.00")
    lunch_single_price: Decimal = Decimal("4.00")

    receipts_enabled: bool = True
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_from_email: str = "academy@example.com"
    smtp_from_name: str = "Academy Office"
    smtp_use_tls: bool = True

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


class MigrationSettings(BaseSettings):
    database_url: str | None = None
    snapshot_path: str | None = None
    semester_name: str = "Spring 2026"
    semester_start_date: str = "2026-02-01"
    semester_end_date: str = "2026-05-30"

    model_config = SettingsConfigDict(
        env_prefix="MIGRATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
