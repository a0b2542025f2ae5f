from html import escape

from models import Contest, REMINDER_1HR, REMINDER_24HR
from timezones import convert
from utils import duration_to_str, host_to_platform

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

REMINDER_HEADERS = {
    REMINDER_24HR: "⏳ <b>Reminder:</b> Contest in 24 hours!",
    REMINDER_1HR: "🔥 <b>Reminder:</b> Contest starts in 1 hour!",
}


def str_offset(instant) -> str:
    offset = instant.utcoffset()
    minutes = int(offset.total_seconds() // 60)
    sign = "+" if minutes >= 0 else "-"
    hours, minutes = divmod(abs(minutes), 60)

    return f"UTC{sign}{hours:02d}:{minutes:02d}"


def str_local_time(instant, timezone: str) -> str:
    local = convert(instant, timezone)

    return f"{local.strftime(TIME_FORMAT)} {str_offset(local)}"


def format_contest(contest: Contest, timezone: str) -> str:
    platform = escape(host_to_platform(contest.host))
    href = escape(contest.href, quote=True)

    return (
        f"📢 <b>{escape(contest.event)}</b>\n"
        f"🌐 <b>Platform:</b> {platform}\n"
        f"⏳ <b>Duration:</b> {duration_to_str(contest.duration)}\n"
        f"🕒 <b>Start:</b> {str_local_time(contest.start, timezone)}\n"
        f"🛑 <b>End:</b> {str_local_time(contest.end, timezone)}\n"
        f'🔗 <b>Join Here:</b> <a href="{href}">{escape(contest.host)}</a>'
    )


def format_reminder(contest: Contest, timezone: str, kind: str) -> str:
    return f"{REMINDER_HEADERS[kind]}\n{format_contest(contest, timezone)}"
