import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

import aiosqlite

from models import REMINDER_1HR, REMINDER_24HR, ReminderKey, ReminderRecord, Subscription

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"

# Each entry upgrades the schema by one `user_version`.
MIGRATIONS = [
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        chat_id INTEGER PRIMARY KEY,
        timezone TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS sent_reminders (
        chat_id INTEGER NOT NULL,
        platform TEXT NOT NULL,
        contest_id TEXT NOT NULL,
        reminder_type TEXT NOT NULL,
        contest_start INTEGER NOT NULL,
        PRIMARY KEY (chat_id, platform, contest_id, reminder_type)
    );

    CREATE INDEX IF NOT EXISTS idx_sent_reminders_contest_start
        ON sent_reminders (contest_start);
    """,
]


class PersistenceError(RuntimeError):
    """Raised when the database cannot complete an operation."""


def to_timestamp(instant: datetime) -> int:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)

    return int(instant.timestamp())


def from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class Database:
    def __init__(self, db_name: str):
        self.db_name = db_name
        self.conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        try:
            self.conn = await aiosqlite.connect(self.db_name)
            self.conn.row_factory = aiosqlite.Row
            await self._run_migrations()
        except aiosqlite.Error as exc:
            raise PersistenceError(f"Cannot open database {self.db_name!r}") from exc

        logger.info("Database is ready: %s", self.db_name)

    async def close(self) -> None:
        if self.conn is not None:
            await self.conn.close()
            self.conn = None

    async def _run_migrations(self) -> None:
        async with self.conn.execute("PRAGMA user_version") as cursor:
            current_version = (await cursor.fetchone())[0]

        for version, script in enumerate(MIGRATIONS[current_version:], current_version + 1):
            await self.conn.executescript(script)
            await self.conn.execute(f"PRAGMA user_version = {version}")
            await self.conn.commit()

            logger.info("Applied database migration %d", version)

    async def execute(self, query: str, args=(), fetch: Optional[str] = None):
        if self.conn is None:
            raise PersistenceError("Database is not connected")

        try:
            async with self.conn.execute(query, args) as cursor:
                if fetch == "one":
                    return await cursor.fetchone()
                if fetch == "all":
                    return await cursor.fetchall()

                await self.conn.commit()
                return cursor.rowcount
        except aiosqlite.Error as exc:
            raise PersistenceError(str(exc)) from exc

    async def execute_many(self, query: str, rows: list[tuple]) -> None:
        if self.conn is None:
            raise PersistenceError("Database is not connected")

        try:
            await self.conn.executemany(query, rows)
            await self.conn.commit()
        except aiosqlite.Error as exc:
            raise PersistenceError(str(exc)) from exc


class SubscriberStore:
    def __init__(self, db: Database, default_timezone: str = DEFAULT_TIMEZONE):
        self.db = db
        self.default_timezone = default_timezone

    async def list_all(self) -> list[Subscription]:
        rows = await self.db.execute(
            "SELECT chat_id, timezone FROM subscriptions", fetch="all"
        )
        return [Subscription(row["chat_id"], row["timezone"]) for row in rows]

    async def get(self, chat_id: int) -> Optional[Subscription]:
        row = await self.db.execute(
            "SELECT chat_id, timezone FROM subscriptions WHERE chat_id = ?",
            (chat_id,),
            fetch="one",
        )
        return Subscription(row["chat_id"], row["timezone"]) if row else None

    async def upsert(self, chat_id: int, timezone: Optional[str] = None) -> None:
        # An existing subscription keeps the timezone it already has
        await self.db.execute(
            "INSERT OR IGNORE INTO subscriptions (chat_id, timezone) VALUES (?, ?)",
            (chat_id, timezone or self.default_timezone),
        )

    async def set_timezone(self, chat_id: int, timezone: str) -> None:
        await self.db.execute(
            """
            INSERT INTO subscriptions (chat_id, timezone) VALUES (?, ?)
            ON CONFLICT(chat_id) DO UPDATE SET timezone = excluded.timezone
            """,
            (chat_id, timezone),
        )

    async def remove(self, chat_id: int) -> bool:
        rows_affected = await self.db.execute(
            "DELETE FROM subscriptions WHERE chat_id = ?", (chat_id,)
        )
        return rows_affected > 0

    async def migrate(self, chat_id: int, new_chat_id: int) -> bool:
        # A subscription that already exists under the new id wins
        rows_affected = await self.db.execute(
            "UPDATE OR IGNORE subscriptions SET chat_id = ? WHERE chat_id = ?",
            (new_chat_id, chat_id),
        )
        await self.remove(chat_id)
        return rows_affected > 0


class ReminderLedger:
    def __init__(self, db: Database):
        self.db = db

    async def add_many(self, records: Iterable[ReminderRecord]) -> None:
        rows = [
            (r.chat_id, r.platform, r.contest_id, r.kind, to_timestamp(r.contest_start))
            for r in records
        ]

        if not rows:
            return

        await self.db.execute_many(
            """
            INSERT OR IGNORE INTO sent_reminders
                (chat_id, platform, contest_id, reminder_type, contest_start)
            VALUES (?, ?, ?, ?, ?)
            """,
            rows,
        )

    async def load_keys(self) -> frozenset[ReminderKey]:
        rows = await self.db.execute(
            "SELECT chat_id, platform, contest_id, reminder_type FROM sent_reminders",
            fetch="all",
        )
        return frozenset(
            (row["chat_id"], row["platform"], row["contest_id"], row["reminder_type"])
            for row in rows
        )

    async def list_all(self) -> list[ReminderRecord]:
        rows = await self.db.execute(
            """
            SELECT chat_id, platform, contest_id, reminder_type, contest_start
            FROM sent_reminders
            """,
            fetch="all",
        )
        return [
            ReminderRecord(
                row["chat_id"],
                row["platform"],
                row["contest_id"],
                row["reminder_type"],
                from_timestamp(row["contest_start"]),
            )
            for row in rows
        ]

    async def delete_expired(self, now: datetime) -> int:
        """
        Delete reminders that can no longer matter: a 24hr reminder once its
        contest is less than an hour away, a 1hr reminder once it has started.
        """
        now_ts = to_timestamp(now)

        return await self.db.execute(
            """
            DELETE FROM sent_reminders
            WHERE (reminder_type = ? AND contest_start < ?)
               OR (reminder_type = ? AND contest_start <= ?)
            """,
            (REMINDER_24HR, now_ts + 3600, REMINDER_1HR, now_ts),
        )

    async def migrate(self, chat_id: int, new_chat_id: int) -> None:
        await self.db.execute(
            "UPDATE OR IGNORE sent_reminders SET chat_id = ? WHERE chat_id = ?",
            (new_chat_id, chat_id),
        )
        await self.db.execute("DELETE FROM sent_reminders WHERE chat_id = ?", (chat_id,))
