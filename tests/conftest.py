from datetime import datetime, timedelta, timezone
from typing import Union

import pytest
import pytest_asyncio

from models import Contest
from repository import Database, ReminderLedger, SubscriberStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_contest(
    id: str = "cf-1",
    host: str = "codeforces.com",
    start_in: timedelta = timedelta(hours=23),
    duration: int = 10800,
    event: str = "Codeforces Round 1000 (Div. 2)",
    now: datetime = NOW,
) -> Contest:
    start = now + start_in
    return Contest(
        id=id,
        host=host,
        event=event,
        start=start,
        end=start + timedelta(seconds=duration),
        duration=duration,
        href=f"https://{host}/contests/{id}",
    )


class FakeNotifier:
    """Records sent messages; raises the configured failure for a chat."""

    def __init__(self):
        self.sent: list[tuple[int, str]] = []
        self.failures: dict[int, Union[type[Exception], Exception]] = {}

    async def send(self, chat_id: int, text: str) -> None:
        failure = self.failures.get(chat_id)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            raise failure(chat_id, "delivery failed")

        self.sent.append((chat_id, text))

    def sent_to(self, chat_id: int) -> list[str]:
        return [text for sent_chat_id, text in self.sent if sent_chat_id == chat_id]


class FakeContestSource:
    def __init__(self, contests=()):
        self.contests = list(contests)
        self.calls = 0

    async def list_upcoming(self):
        self.calls += 1
        return list(self.contests)


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "contests.db"))
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def subscribers(db):
    return SubscriberStore(db)


@pytest.fixture
def ledger(db):
    return ReminderLedger(db)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def contest_source():
    return FakeContestSource()
