from dataclasses import dataclass
from datetime import datetime
from typing import TypeAlias

REMINDER_24HR = "24hr"
REMINDER_1HR = "1hr"

ReminderKey: TypeAlias = tuple[int, str, str, str]


@dataclass(frozen=True)
class Contest:
    id: str
    host: str
    event: str
    start: datetime
    end: datetime
    duration: int
    href: str


@dataclass
class Subscription:
    chat_id: int
    timezone: str


@dataclass(frozen=True)
class ReminderRecord:
    chat_id: int
    platform: str
    contest_id: str
    kind: str
    contest_start: datetime

    @property
    def key(self) -> ReminderKey:
        return (self.chat_id, self.platform, self.contest_id, self.kind)

    @classmethod
    def for_contest(cls, chat_id: int, contest: Contest, kind: str) -> "ReminderRecord":
        return cls(chat_id, contest.host, contest.id, kind, contest.start)
