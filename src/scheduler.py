import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Protocol

from contests import ContestSource
from formatting import format_reminder
from models import (
    REMINDER_1HR,
    REMINDER_24HR,
    Contest,
    ReminderKey,
    ReminderRecord,
    Subscription,
)
from notifier import DeliveryChatMigrated, DeliveryPermanentFailure, DeliveryTransientFailure
from repository import DEFAULT_TIMEZONE, PersistenceError, ReminderLedger, SubscriberStore
from timezones import InvalidTimezone, convert, hours_until

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def send(self, chat_id: int, text: str) -> None: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DueReminder:
    chat_id: int
    timezone: str
    contest: Contest
    kind: str

    @property
    def record(self) -> ReminderRecord:
        return ReminderRecord.for_contest(self.chat_id, self.contest, self.kind)


@dataclass
class TickReport:
    pruned: int = 0
    contests: int = 0
    subscribers: int = 0
    due: int = 0
    sent: int = 0
    failed: int = 0
    removed: int = 0
    migrated: int = 0
    skipped: bool = False


def resolve_timezone(
    subscription: Subscription,
    contest: Contest,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> str:
    try:
        convert(contest.start, subscription.timezone)
    except InvalidTimezone:
        logger.warning(
            "Chat %s has invalid timezone %r, using %s",
            subscription.chat_id,
            subscription.timezone,
            default_timezone,
        )
        return default_timezone

    return subscription.timezone


def due_kinds(hours_left: float) -> list[str]:
    kinds = []

    # both windows are checked so a late tick never drops the 1hr reminder
    if 1 < hours_left <= 24:
        kinds.append(REMINDER_24HR)
    if 0 < hours_left <= 1:
        kinds.append(REMINDER_1HR)

    return kinds


def due_reminders(
    contests: Iterable[Contest],
    subscriptions: Iterable[Subscription],
    sent_keys: frozenset[ReminderKey],
    now: datetime,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> list[DueReminder]:
    contests = list(contests)
    result = []

    for subscription in subscriptions:
        for contest in contests:
            if contest.start <= now:
                continue

            hours_left = hours_until(contest.start, now)

            for kind in due_kinds(hours_left):
                key = (subscription.chat_id, contest.host, contest.id, kind)

                if key in sent_keys:
                    continue

                tz = resolve_timezone(subscription, contest, default_timezone)
                result.append(DueReminder(subscription.chat_id, tz, contest, kind))

    return result


class ReminderScheduler:
    """
    Sends 24hr and 1hr contest reminders to subscribers. Each call to `tick`
    prunes the ledger, computes the due reminders against a snapshot of the
    ledger, sends them and records the ones that were delivered.
    """

    def __init__(
        self,
        *,
        contest_source: ContestSource,
        subscribers: SubscriberStore,
        ledger: ReminderLedger,
        notifier: NotificationSink,
        clock: Callable[[], datetime] = utc_now,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        self.contest_source = contest_source
        self.subscribers = subscribers
        self.ledger = ledger
        self.notifier = notifier
        self.clock = clock
        self.default_timezone = default_timezone
        self._lock = asyncio.Lock()

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        if self._lock.locked():
            logger.warning("Previous reminder tick is still running, skipping")
            return TickReport(skipped=True)

        async with self._lock:
            report = TickReport()

            try:
                await self._tick(now or self.clock(), report)
            except PersistenceError:
                logger.error("Reminder tick aborted by a database error", exc_info=True)

            logger.info(
                "Reminder tick: pruned=%d contests=%d subscribers=%d due=%d "
                "sent=%d failed=%d removed=%d migrated=%d",
                report.pruned,
                report.contests,
                report.subscribers,
                report.due,
                report.sent,
                report.failed,
                report.removed,
                report.migrated,
            )
            return report

    async def _tick(self, now: datetime, report: TickReport) -> None:
        report.pruned = await self.ledger.delete_expired(now)

        contests = await self.contest_source.list_upcoming()
        report.contests = len(contests)

        if not contests:
            return

        subscriptions = await self.subscribers.list_all()
        report.subscribers = len(subscriptions)

        sent_keys = await self.ledger.load_keys()

        due = due_reminders(contests, subscriptions, sent_keys, now, self.default_timezone)
        report.due = len(due)

        records = await self.dispatch(due, report)

        if not records:
            return

        try:
            await self.ledger.add_many(records)
        except PersistenceError:
            logger.error(
                "Failed to record %d sent reminders, they may be sent again",
                len(records),
                exc_info=True,
            )

    async def dispatch(self, due: list[DueReminder], report: TickReport) -> list[ReminderRecord]:
        records = []
        unreachable = set()

        for reminder in due:
            if reminder.chat_id in unreachable:
                continue

            text = format_reminder(reminder.contest, reminder.timezone, reminder.kind)

            try:
                await self.notifier.send(reminder.chat_id, text)
            except DeliveryChatMigrated as exc:
                logger.warning("Chat %s migrated to %s", reminder.chat_id, exc.new_chat_id)

                unreachable.add(reminder.chat_id)
                report.failed += 1
                await self.migrate_subscriber(reminder.chat_id, exc.new_chat_id, report)
                continue
            except DeliveryPermanentFailure:
                logger.warning("Chat %s is unreachable, unsubscribing it", reminder.chat_id)

                unreachable.add(reminder.chat_id)
                report.failed += 1
                await self.remove_subscriber(reminder.chat_id, report)
                continue
            except DeliveryTransientFailure:
                logger.warning(
                    "Failed to send %s reminder for contest %s to chat %s",
                    reminder.kind,
                    reminder.contest.id,
                    reminder.chat_id,
                    exc_info=True,
                )
                report.failed += 1
                continue
            except Exception:
                logger.error(
                    "Unexpected error while sending %s reminder for contest %s to chat %s",
                    reminder.kind,
                    reminder.contest.id,
                    reminder.chat_id,
                    exc_info=True,
                )
                report.failed += 1
                continue

            logger.debug(
                "Sent %s reminder for contest %s to chat %s",
                reminder.kind,
                reminder.contest.id,
                reminder.chat_id,
            )
            report.sent += 1
            records.append(reminder.record)

        return records

    async def remove_subscriber(self, chat_id: int, report: TickReport) -> None:
        try:
            if await self.subscribers.remove(chat_id):
                report.removed += 1
        except PersistenceError:
            logger.error("Failed to unsubscribe chat %s", chat_id, exc_info=True)

    async def migrate_subscriber(self, chat_id: int, new_chat_id: int, report: TickReport) -> None:
        try:
            await self.subscribers.migrate(chat_id, new_chat_id)
            await self.ledger.migrate(chat_id, new_chat_id)
            report.migrated += 1
        except PersistenceError:
            logger.error("Failed to move chat %s to %s", chat_id, new_chat_id, exc_info=True)
