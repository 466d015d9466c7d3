import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    bot_token: str
    database_url: str
    log_level: str
    log_path: str
    draw_attempts: int
    history_limit: int
    smtp_host: Optional[str]
    smtp_port: int
    smtp_username: Optional[str]
    smtp_password: Optional[str]
    smtp_use_tls: bool
    mail_from: str


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    bot_token = os.getenv("BOT_TOKEN")
    database_url = os.getenv("DATABASE_URL")
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_path = os.getenv("LOG_PATH", "logs/giftdraw.log")

    if not bot_token:
        raise ValueError("BOT_TOKEN is required. Set it in the environment or .env file.")
    if not database_url:
        raise ValueError("DATABASE_URL is required. Set it in the environment or .env file.")

    draw_attempts = _int_env("DRAW_ATTEMPTS", 100)
    if draw_attempts < 1:
        raise ValueError("DRAW_ATTEMPTS must be at least 1.")

    history_limit = _int_env("HISTORY_LIMIT", 20)
    if history_limit < 1:
        raise ValueError("HISTORY_LIMIT must be at least 1.")

    return Settings(
        bot_token=bot_token,
        database_url=database_url,
        log_level=log_level,
        log_path=log_path,
        draw_attempts=draw_attempts,
        history_limit=history_limit,
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=_int_env("SMTP_PORT", 587),
        smtp_username=os.getenv("SMTP_USERNAME") or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_use_tls=_bool_env("SMTP_USE_TLS", True),
        mail_from=os.getenv("MAIL_FROM", "secret-santa@localhost"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
