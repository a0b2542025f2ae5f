import os
from dataclasses import dataclass
from typing import Optional

from clist.client import CLIST_API_URL
from contests import ALLOWED_HOSTS, DEFAULT_CACHE_TTL, DEFAULT_MAX_DURATION
from repository import DEFAULT_TIMEZONE
from timezones import is_valid_timezone

DEFAULT_DB_NAME = "contests.db"
DEFAULT_PORT = 80
DEFAULT_REMINDER_INTERVAL = 600


@dataclass
class BotConfig:
    bot_token: str
    clist_username: str
    clist_api_key: str
    clist_api_url: str = CLIST_API_URL
    db_name: str = DEFAULT_DB_NAME
    port: int = DEFAULT_PORT
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    default_timezone: str = DEFAULT_TIMEZONE
    reminder_interval: int = DEFAULT_REMINDER_INTERVAL
    contest_cache_ttl: int = DEFAULT_CACHE_TTL
    max_contest_duration: int = DEFAULT_MAX_DURATION
    allowed_hosts: tuple[str, ...] = ALLOWED_HOSTS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, port: Optional[int] = None) -> "BotConfig":
        token = os.environ.get("TELEGRAM_BOT_TOKEN")
        if not token:
            raise RuntimeError("TELEGRAM_BOT_TOKEN must be set")

        username = os.environ.get("CLIST_USERNAME")
        api_key = os.environ.get("CLIST_API_KEY")
        if not username or not api_key:
            raise RuntimeError("CLIST_USERNAME and CLIST_API_KEY must be set")

        default_timezone = os.environ.get("DEFAULT_TIMEZONE", DEFAULT_TIMEZONE)
        if not is_valid_timezone(default_timezone):
            raise RuntimeError(f"DEFAULT_TIMEZONE is not a valid timezone: {default_timezone}")

        webhook_url = os.environ.get("WEBHOOK_URL")

        return cls(
            bot_token=token,
            clist_username=username,
            clist_api_key=api_key,
            clist_api_url=os.environ.get("CLIST_API_URL", CLIST_API_URL),
            db_name=os.environ.get("DB_NAME", DEFAULT_DB_NAME),
            port=port if port is not None else _int_from_env("PORT", DEFAULT_PORT),
            webhook_url=webhook_url.rstrip("/") if webhook_url else None,
            webhook_secret=os.environ.get("WEBHOOK_SECRET") or None,
            default_timezone=default_timezone,
            reminder_interval=_int_from_env("REMINDER_INTERVAL_SECONDS", DEFAULT_REMINDER_INTERVAL),
            contest_cache_ttl=_int_from_env("CONTEST_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL),
            max_contest_duration=_int_from_env("MAX_CONTEST_DURATION_SECONDS", DEFAULT_MAX_DURATION),
            allowed_hosts=_hosts_from_env("ALLOWED_HOSTS", ALLOWED_HOSTS),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


def _int_from_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default

    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {value!r}") from exc


def _hosts_from_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.environ.get(name)
    if not value:
        return default

    return tuple(host.strip() for host in value.split(",") if host.strip())
