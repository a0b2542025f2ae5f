import pytest

from config import BotConfig
from contests import ALLOWED_HOSTS

ENV_VARS = [
    "TELEGRAM_BOT_TOKEN",
    "CLIST_USERNAME",
    "CLIST_API_KEY",
    "CLIST_API_URL",
    "DB_NAME",
    "PORT",
    "WEBHOOK_URL",
    "WEBHOOK_SECRET",
    "DEFAULT_TIMEZONE",
    "REMINDER_INTERVAL_SECONDS",
    "CONTEST_CACHE_TTL_SECONDS",
    "MAX_CONTEST_DURATION_SECONDS",
    "ALLOWED_HOSTS",
    "LOG_LEVEL",
]


@pytest.fixture
def env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("CLIST_USERNAME", "alice")
    monkeypatch.setenv("CLIST_API_KEY", "secret")
    return monkeypatch


def test_defaults(env):
    config = BotConfig.from_env()

    assert config.bot_token == "123:abc"
    assert config.db_name == "contests.db"
    assert config.port == 80
    assert config.webhook_url is None
    assert config.default_timezone == "UTC"
    assert config.reminder_interval == 600
    assert config.contest_cache_ttl == 12 * 3600
    assert config.max_contest_duration == 6 * 3600
    assert config.allowed_hosts == ALLOWED_HOSTS


def test_overrides(env):
    env.setenv("PORT", "8080")
    env.setenv("WEBHOOK_URL", "https://bot.example.com/")
    env.setenv("DEFAULT_TIMEZONE", "Asia/Kolkata")
    env.setenv("ALLOWED_HOSTS", "codeforces.com, atcoder.jp,")
    env.setenv("LOG_LEVEL", "debug")

    config = BotConfig.from_env()

    assert config.port == 8080
    assert config.webhook_url == "https://bot.example.com"
    assert config.default_timezone == "Asia/Kolkata"
    assert config.allowed_hosts == ("codeforces.com", "atcoder.jp")
    assert config.log_level == "DEBUG"


def test_port_argument_wins(env):
    env.setenv("PORT", "8080")

    assert BotConfig.from_env(port=3000).port == 3000


def test_missing_token(env):
    env.delenv("TELEGRAM_BOT_TOKEN")

    with pytest.raises(RuntimeError, match="TELEGRAM_BOT_TOKEN"):
        BotConfig.from_env()


def test_missing_clist_credentials(env):
    env.delenv("CLIST_API_KEY")

    with pytest.raises(RuntimeError, match="CLIST"):
        BotConfig.from_env()


def test_invalid_integer(env):
    env.setenv("REMINDER_INTERVAL_SECONDS", "ten minutes")

    with pytest.raises(RuntimeError, match="REMINDER_INTERVAL_SECONDS"):
        BotConfig.from_env()


def test_invalid_default_timezone(env):
    env.setenv("DEFAULT_TIMEZONE", "Mars/Phobos")

    with pytest.raises(RuntimeError, match="DEFAULT_TIMEZONE"):
        BotConfig.from_env()
