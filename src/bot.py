import logging

import httpx
from telegram import Update
from telegram.error import Conflict
from telegram.ext import (
    filters,
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
)

from clist.client import ClistClient
from config import BotConfig
from contests import ContestSource
from notifier import TelegramNotifier
from repository import Database, PersistenceError, ReminderLedger, SubscriberStore
from scheduler import ReminderScheduler
from timezones import TIMEZONES_REFERENCE_URL, is_valid_timezone

logger = logging.getLogger(__name__)

# ----------------------------------------------------------------
#  @messages
# ----------------------------------------------------------------

HELP_MESSAGE = """

👋 <b>Welcome!</b>

I send reminders about upcoming programming contests on Codeforces, AtCoder, CodeChef, LeetCode and more: one a day before the contest and one an hour before it starts.

/subscribe - get contest reminders
/unsubscribe - stop receiving contest reminders
/settimezone {timezone} - show times in your timezone, e.g. /settimezone Asia/Kolkata

"""

SET_TIMEZONE_USAGE = f"""

Usage: /settimezone {{timezone}}

e.g. /settimezone Europe/Berlin

The full list of timezone identifiers: {TIMEZONES_REFERENCE_URL}

"""

INVALID_TIMEZONE_MESSAGE = (
    "⚠️ Invalid timezone. Use a valid identifier from the tz database: "
    + TIMEZONES_REFERENCE_URL
)

FAILURE_MESSAGE = "Something went wrong on our side. Please try again later"

# ----------------------------------------------------------------
#  @utils
# ----------------------------------------------------------------


def get_subscribers(context: ContextTypes.DEFAULT_TYPE) -> SubscriberStore:
    return context.bot_data["subscribers"]


def get_scheduler(context: ContextTypes.DEFAULT_TYPE) -> ReminderScheduler:
    return context.bot_data["scheduler"]


# ----------------------------------------------------------------
#  @default
# ----------------------------------------------------------------


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(HELP_MESSAGE, parse_mode="HTML")


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(HELP_MESSAGE, parse_mode="HTML")


# ----------------------------------------------------------------
#  @subscriptions
# ----------------------------------------------------------------


async def subscribe_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat_id = update.effective_chat.id

    try:
        await get_subscribers(context).upsert(chat_id)
    except PersistenceError:
        logger.error("Failed to subscribe chat %s", chat_id, exc_info=True)
        await update.message.reply_text(FAILURE_MESSAGE)
        return

    await update.message.reply_text("✅ Subscribed! You'll receive contest reminders.")


async def unsubscribe_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat_id = update.effective_chat.id

    try:
        await get_subscribers(context).remove(chat_id)
    except PersistenceError:
        logger.error("Failed to unsubscribe chat %s", chat_id, exc_info=True)
        await update.message.reply_text(FAILURE_MESSAGE)
        return

    await update.message.reply_text("❌ Unsubscribed! You won't receive reminders.")


# ----------------------------------------------------------------
#  @timezone
# ----------------------------------------------------------------


async def set_timezone_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        await update.message.reply_text(SET_TIMEZONE_USAGE)
        return

    timezone = context.args[0].strip()

    if not is_valid_timezone(timezone):
        await update.message.reply_text(INVALID_TIMEZONE_MESSAGE)
        return

    chat_id = update.effective_chat.id

    try:
        await get_subscribers(context).set_timezone(chat_id, timezone)
    except PersistenceError:
        logger.error("Failed to set timezone for chat %s", chat_id, exc_info=True)
        await update.message.reply_text(FAILURE_MESSAGE)
        return

    await update.message.reply_text(f"🌍 Timezone set to {timezone}")


# ----------------------------------------------------------------
#  @reminder_caller
# ----------------------------------------------------------------


async def reminder_job(context: ContextTypes.DEFAULT_TYPE):
    await get_scheduler(context).tick()


# ----------------------------------------------------------------
#  @common_handlers
# ----------------------------------------------------------------


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    # conflicts occur during redeploys while the old instance is still polling
    if isinstance(context.error, Conflict):
        return

    if isinstance(context.error, httpx.ReadError):
        return

    logger.error("An error occurred: ", exc_info=context.error)


async def invalid_command_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text("Invalid command. Type /help for more information")


# ----------------------------------------------------------------
#  @lifecycle
# ----------------------------------------------------------------


async def post_init(app: Application):
    await app.bot_data["db"].connect()


async def post_shutdown(app: Application):
    await app.bot_data["db"].close()


# ----------------------------------------------------------------
#  @runner
# ----------------------------------------------------------------


def build_application(config: BotConfig) -> Application:
    app = (
        ApplicationBuilder()
        .token(config.bot_token)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    db = Database(config.db_name)
    subscribers = SubscriberStore(db, config.default_timezone)

    contest_source = ContestSource(
        upstream=ClistClient(
            username=config.clist_username,
            api_key=config.clist_api_key,
            api_url=config.clist_api_url,
        ),
        allowed_hosts=config.allowed_hosts,
        max_duration=config.max_contest_duration,
        ttl=config.contest_cache_ttl,
    )

    scheduler = ReminderScheduler(
        contest_source=contest_source,
        subscribers=subscribers,
        ledger=ReminderLedger(db),
        notifier=TelegramNotifier(app.bot),
        default_timezone=config.default_timezone,
    )

    app.bot_data["db"] = db
    app.bot_data["subscribers"] = subscribers
    app.bot_data["scheduler"] = scheduler

    # Send due reminders every 10 minutes by default
    app.job_queue.run_repeating(
        reminder_job, interval=config.reminder_interval, first=10, name="contest_reminders"
    )

    # ----------------------------------------------------------------
    # --- Common Handlers ---

    # Handle errors during bot operation
    app.add_error_handler(error_handler)

    # ----------------------------------------------------------------
    # --- Commands ---

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))

    app.add_handler(CommandHandler("subscribe", subscribe_command))
    app.add_handler(CommandHandler("unsubscribe", unsubscribe_command))
    app.add_handler(CommandHandler("settimezone", set_timezone_command))

    # Handle invalid commands
    app.add_handler(MessageHandler(filters.COMMAND, invalid_command_handler))

    return app
