# autoflow/core/config.py
from dotenv import load_dotenv
import os

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    APP_NAME: str = "autoflow"
    APP_ENV: str = os.getenv("APP_ENV", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    GEMINI_API_KEY: str | None = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GENERATOR_MOCK_MODE: bool = _env_bool("GENERATOR_MOCK_MODE", not os.getenv("GEMINI_API_KEY"))

    LEDGER_URL: str | None = os.getenv("LEDGER_URL")
    LEDGER_TIMEOUT_SECONDS: int = _env_int("LEDGER_TIMEOUT_SECONDS", 10)
    DEFAULT_CREDITS: int = _env_int("DEFAULT_CREDITS", 10)
    DEFAULT_BONUS_CREDITS: int = _env_int("DEFAULT_BONUS_CREDITS", 0)
    DEFAULT_BATCH_CREDITS: int = _env_int("DEFAULT_BATCH_CREDITS", 1)

    MAX_BATCH_ARTIFACTS: int = _env_int("MAX_BATCH_ARTIFACTS", 5)
    LOW_BALANCE_THRESHOLD: int = _env_int("LOW_BALANCE_THRESHOLD", 10)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
