from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    app_name: str = "Library Circulation API"

    # Database. Production points this at postgresql+psycopg_async://...
    database_url: str = "sqlite+aiosqlite:///./library.db"
    db_pool_size: int = 5
    db_max_overflow: int = 5
    db_echo: bool = False

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Environment configuration
    environment: str = "development"  # development, staging, or production

    cors_origins: list[str] = [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # SMTP configuration
    email_enabled: bool = False
    smtp_host: str = "smtp-relay.brevo.com"
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from_email: str = "library@example.com"
    smtp_timeout_seconds: int = 10

    # Circulation rules
    daily_fine_amount: Decimal = Decimal("5")
    lending_period_days: int = 60
    reminder_days_before_due: int = 2
    max_extensions: int = 3
    max_extension_days: int = 30

    # Background jobs
    scheduler_enabled: bool = True
    scheduler_timezone: str = "Asia/Kolkata"
    accrual_interval_seconds: int = 60
    reminder_hour: int = 10
    fine_summary_day_of_week: str = "mon"
    fine_summary_hour: int = 8

    port: int = 8000

    model_config = SettingsConfigDict(env_file=".env")

settings = Settings()
