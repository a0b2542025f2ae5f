import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from models import Contest

logger = logging.getLogger(__name__)

CLIST_API_URL = "https://clist.by/api/v4/json/contest/"

DEFAULT_TIMEOUT = 10.0
DEFAULT_LIMIT = 200


class SourceFetchError(RuntimeError):
    """Raised when the contest listing cannot be fetched or parsed."""


class ClistClient:
    """clist.by client. Fetches upcoming contests from the v4 JSON API."""

    def __init__(
        self,
        *,
        username: str,
        api_key: str,
        api_url: str = CLIST_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.username = username
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def fetch_upcoming(self, *, max_duration: int) -> list[Contest]:
        params = get_upcoming_params(
            username=self.username,
            api_key=self.api_key,
            max_duration=max_duration,
        )

        async with self._client() as client:
            try:
                response = await client.get(self.api_url, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                raise SourceFetchError(f"clist responded with HTTP {status}") from exc
            except httpx.HTTPError as exc:
                raise SourceFetchError("Network error while contacting clist") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceFetchError("Invalid JSON response from clist") from exc

        objects = payload.get("objects") if isinstance(payload, dict) else None

        if not isinstance(objects, list):
            raise SourceFetchError("clist response has no 'objects' list")

        contests = []

        for obj in objects:
            try:
                contests.append(parse_contest(obj))
            except SourceFetchError:
                logger.warning("Skipping malformed contest from clist", exc_info=True)

        return contests


def get_upcoming_params(*, username: str, api_key: str, max_duration: int) -> dict:
    """Return query parameters for the upcoming contests listing."""
    return {
        "username": username,
        "api_key": api_key,
        "upcoming": "true",
        "duration__lt": max_duration,
        "order_by": "start",
        "limit": DEFAULT_LIMIT,
    }


def parse_datetime(value: str) -> datetime:
    instant = datetime.fromisoformat(value)

    # clist returns naive UTC timestamps
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)

    return instant.astimezone(timezone.utc)


def parse_contest(obj: dict[str, Any]) -> Contest:
    try:
        return Contest(
            id=str(obj["id"]),
            host=obj["host"],
            event=obj["event"],
            start=parse_datetime(obj["start"]),
            end=parse_datetime(obj["end"]),
            duration=int(obj["duration"]),
            href=obj["href"],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise SourceFetchError(f"Malformed contest object: {obj!r}") from exc
