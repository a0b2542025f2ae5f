import logging
import time
from typing import Callable, Iterable, Optional

from clist.client import ClistClient, SourceFetchError
from models import Contest

logger = logging.getLogger(__name__)

ALLOWED_HOSTS = (
    "atcoder.jp",
    "codeforces.com",
    "codechef.com",
    "leetcode.com",
    "geeksforgeeks.org",
    "naukri.com/code360",
    "luogu.com.cn",
)

DEFAULT_CACHE_TTL = 12 * 3600
DEFAULT_MAX_DURATION = 6 * 3600


class ContestSource:
    """Upcoming contests from clist, cached in memory for `ttl` seconds."""

    def __init__(
        self,
        *,
        upstream: ClistClient,
        allowed_hosts: Iterable[str] = ALLOWED_HOSTS,
        max_duration: int = DEFAULT_MAX_DURATION,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.upstream = upstream
        self.allowed_hosts = frozenset(allowed_hosts)
        self.max_duration = max_duration
        self.ttl = ttl
        self.clock = clock

        self._contests: Optional[list[Contest]] = None
        self._fetched_at: float = 0.0

    def is_fresh(self) -> bool:
        if self._contests is None:
            return False

        return (self.clock() - self._fetched_at) < self.ttl

    async def list_upcoming(self) -> list[Contest]:
        if self.is_fresh():
            return list(self._contests)

        try:
            contests = await self.upstream.fetch_upcoming(max_duration=self.max_duration)
        except SourceFetchError:
            logger.error("Failed to fetch contests from clist", exc_info=True)

            # stale data beats no data; failures are not cached
            return list(self._contests) if self._contests is not None else []

        self._contests = self.filter_contests(contests)
        self._fetched_at = self.clock()

        logger.info("Fetched %d upcoming contests", len(self._contests))

        return list(self._contests)

    def filter_contests(self, contests: Iterable[Contest]) -> list[Contest]:
        contests = [
            contest
            for contest in contests
            if contest.host in self.allowed_hosts and contest.duration < self.max_duration
        ]

        return sorted(contests, key=lambda contest: contest.start)
