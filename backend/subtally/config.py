from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "SubTally"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite+aiosqlite:///./subtally.db"
    DISCORD_WEBHOOK_URL: str = ""

    # FX (Frankfurter, no API key)
    FX_API_URL: str = "https://api.frankfurter.app"
    FX_TIMEOUT_SECONDS: float = 10.0
    FX_MIN_REFRESH_HOURS: int = 12
    FX_MANUAL_COOLDOWN_SECONDS: int = 30
    FX_FALLBACK_USD_KRW: str = "1300"

    # Schedule
    DEFAULT_HORIZON_DAYS: int = 365
    REMINDER_DAYS: int = 3
    REMINDER_HOUR: int = 9

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
