import html
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

import httpx
from bs4 import BeautifulSoup

from devdash.config import settings
from devdash.errors import (
    DEFAULT_RATE_LIMIT_HINT,
    NetworkError,
    UnknownError,
    error_for_response,
)
from devdash.models import Source
from devdash.utils.logging import get_logger

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class CandidateRecord:
    """An upstream item normalized by a collector, not yet persisted."""
    external_id: str
    title: str
    url: str
    author: str
    posted_at: datetime | None = None
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    raw_metrics: dict[str, float] = field(default_factory=dict)
    language: str | None = None
    # Per-source facts the scorer may use (story type, pinned, ...)
    extras: dict[str, Any] = field(default_factory=dict)


def truncate(text: str | None, max_len: int, suffix: str = "...") -> str:
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[:max_len].rstrip() + suffix


def strip_html(text: str | None) -> str:
    """HTML fragment to plain text: tags dropped, entities decoded, whitespace collapsed."""
    if not text:
        return ""
    plain = BeautifulSoup(text, "html.parser").get_text(" ")
    plain = html.unescape(plain)
    return _WHITESPACE_RE.sub(" ", plain).strip()


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed); None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def from_timestamp(value: Any) -> datetime | None:
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def matches_keywords(text: str, keywords: list[str]) -> bool:
    """Case-insensitive substring match against any keyword."""
    lowered = text.lower()
    return any(kw.lower() in lowered for kw in keywords)


class BaseCollector(ABC):
    """
    Client adapter and parser for one source type.

    ``fetch`` does the network I/O and raises a FetchError on failure;
    ``parse`` is a pure transform of its payload into CandidateRecords.
    """

    source_type: ClassVar[str]
    default_max_items: ClassVar[int] = 30
    rate_limit_hint: ClassVar[str] = DEFAULT_RATE_LIMIT_HINT

    def __init__(self, source: Source):
        self.source = source

    @property
    def config(self) -> dict[str, Any]:
        return self.source.config

    @property
    def max_items(self) -> int:
        return self.source.config_int("max_items", self.default_max_items)

    def headers(self) -> dict[str, str]:
        return {"User-Agent": settings.user_agent}

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=settings.http_timeout,
            headers=self.headers(),
            follow_redirects=True,
            max_redirects=5,
        )

    async def get(
        self, client: httpx.AsyncClient, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """Issue one GET; non-200 responses and transport failures raise FetchError."""
        try:
            response = await client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise NetworkError("Request timeout") from exc
        except httpx.TooManyRedirects as exc:
            raise UnknownError("Too many redirects") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"Network error: {exc}") from exc

        if response.status_code != 200:
            logger.warning(
                f"{self.source_type}_api_error",
                source=self.source.name,
                url=url,
                status_code=response.status_code,
            )
            raise error_for_response(
                response.status_code,
                response.text,
                headers=response.headers,
                rate_limit_hint=self.rate_limit_hint,
            )
        return response

    async def get_json(
        self, client: httpx.AsyncClient, url: str, params: dict[str, Any] | None = None
    ) -> Any:
        response = await self.get(client, url, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise UnknownError("Invalid JSON response") from exc

    @abstractmethod
    async def fetch(self) -> Any:
        """Fetch the raw payload for this source."""
        ...

    @abstractmethod
    def parse(self, payload: Any) -> list[CandidateRecord]:
        """Normalize a raw payload. Never raises on missing optional fields."""
        ...

    async def collect(self) -> list[CandidateRecord]:
        records = self.parse(await self.fetch())
        logger.info(f"{self.source_type}_collected", source=self.source.name, count=len(records))
        return records
