from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import Conflict

import bot
from config import BotConfig
from repository import PersistenceError
from models import Subscription


def make_update(chat_id: int = 42):
    update = MagicMock()
    update.effective_chat.id = chat_id
    update.message.reply_text = AsyncMock()
    return update


def make_context(subscribers=None, scheduler=None, args=None):
    context = MagicMock()
    context.bot_data = {"subscribers": subscribers, "scheduler": scheduler}
    context.args = args or []
    return context


def reply_of(update) -> str:
    return update.message.reply_text.call_args.args[0]


@pytest.mark.asyncio
async def test_start_sends_welcome():
    update = make_update()

    await bot.start_command(update, make_context())

    assert "/subscribe" in reply_of(update)
    assert update.message.reply_text.call_args.kwargs["parse_mode"] == "HTML"


@pytest.mark.asyncio
async def test_subscribe_and_unsubscribe(subscribers):
    update = make_update()
    context = make_context(subscribers)

    await bot.subscribe_command(update, context)
    await bot.subscribe_command(update, context)

    assert await subscribers.list_all() == [Subscription(42, "UTC")]
    assert "Subscribed" in reply_of(update)

    await bot.unsubscribe_command(update, context)
    await bot.unsubscribe_command(update, context)

    assert await subscribers.list_all() == []
    assert "Unsubscribed" in reply_of(update)


@pytest.mark.asyncio
async def test_set_timezone(subscribers):
    update = make_update()
    await subscribers.upsert(42)

    await bot.set_timezone_command(update, make_context(subscribers, args=["Asia/Kolkata"]))

    assert await subscribers.get(42) == Subscription(42, "Asia/Kolkata")
    assert reply_of(update) == "🌍 Timezone set to Asia/Kolkata"


@pytest.mark.asyncio
async def test_set_invalid_timezone_changes_nothing(subscribers):
    update = make_update()
    await subscribers.upsert(42)

    await bot.set_timezone_command(update, make_context(subscribers, args=["Mars/Phobos"]))

    assert await subscribers.get(42) == Subscription(42, "UTC")
    assert reply_of(update) == bot.INVALID_TIMEZONE_MESSAGE


@pytest.mark.asyncio
async def test_set_timezone_without_argument(subscribers):
    update = make_update()

    await bot.set_timezone_command(update, make_context(subscribers))

    assert reply_of(update) == bot.SET_TIMEZONE_USAGE
    assert await subscribers.list_all() == []


@pytest.mark.asyncio
async def test_persistence_failure_is_reported():
    subscribers = AsyncMock()
    subscribers.upsert.side_effect = PersistenceError("database is locked")
    update = make_update()

    await bot.subscribe_command(update, make_context(subscribers))

    assert reply_of(update) == bot.FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_reminder_job_ticks_scheduler():
    scheduler = AsyncMock()

    await bot.reminder_job(make_context(scheduler=scheduler))

    scheduler.tick.assert_awaited_once()


@pytest.mark.asyncio
async def test_error_handler_ignores_conflicts(caplog):
    context = make_context()
    context.error = Conflict("terminated by other getUpdates request")

    await bot.error_handler(None, context)

    assert "An error occurred" not in caplog.text


def test_build_application_uses_configured_default_timezone():
    config = BotConfig(
        bot_token="123:abc",
        clist_username="alice",
        clist_api_key="secret",
        default_timezone="Asia/Kolkata",
    )

    app = bot.build_application(config)

    assert app.bot_data["scheduler"].default_timezone == "Asia/Kolkata"
    assert app.bot_data["subscribers"].default_timezone == "Asia/Kolkata"
