import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from devdash.utils.logging import get_logger

logger = get_logger(__name__)


class SourceType(str, Enum):
    GITHUB = "github"
    GITHUB_TRENDING = "github_trending"
    REDDIT = "reddit"
    DISCOURSE = "discourse"
    RSS = "rss"
    HACKER_NEWS = "hacker_news"


class PostStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    RESPONDED = "responded"
    IGNORED = "ignored"


# Source types that are polled without a url
URL_OPTIONAL_TYPES = {SourceType.GITHUB_TRENDING.value}

_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
_CONFIG_PREFIX_RE = re.compile(r"^Config:\s*")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


def parse_config(raw: Any) -> dict[str, Any]:
    """
    Normalize a source config into a dict.

    Accepts a mapping or a JSON string. Strings are cleaned of a stray
    "Config:" prefix and line breaks before parsing. Anything unparseable
    yields an empty dict.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, str):
        logger.warning("source_config_invalid_type", type=type(raw).__name__)
        return {}

    cleaned = _CONFIG_PREFIX_RE.sub("", raw.strip())
    cleaned = re.sub(r"\r\n|\r|\n", "", cleaned).strip()
    if not cleaned:
        return {}

    try:
        parsed = json.loads(cleaned)
    except ValueError as exc:
        logger.warning("source_config_invalid_json", error=str(exc), config=raw[:200])
        return {}

    if not isinstance(parsed, dict):
        logger.warning("source_config_not_an_object", config=raw[:200])
        return {}
    return parsed


def parse_tags(raw: Any) -> list[str]:
    """Read tags back from their serialized form; invalid input gives []."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return [str(t) for t in raw]
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return [str(t) for t in parsed] if isinstance(parsed, list) else []


@dataclass
class Source:
    """A configured origin to poll."""
    name: str
    source_type: str
    url: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    active: bool = True
    auto_fetch_enabled: bool = True
    status: str = ""
    last_fetched_at: datetime | None = None
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        if isinstance(self.source_type, SourceType):
            self.source_type = self.source_type.value
        self.config = parse_config(self.config)

    def config_list(self, key: str) -> list[str]:
        """Return a list-valued config key; a comma-separated string is split."""
        value = self.config.get(key)
        if not value:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value if v is not None and str(v).strip()]
        return []

    def config_int(self, key: str, default: int) -> int:
        value = self.config.get(key)
        try:
            return int(value) if value is not None else default
        except (TypeError, ValueError):
            return default

    def validate(self) -> None:
        """Raise ValueError if the source can't be stored."""
        if not self.name or not self.name.strip():
            raise ValueError("name must not be blank")
        if not self.source_type:
            raise ValueError("source_type must not be blank")
        if self.url:
            if not _URL_RE.match(self.url):
                raise ValueError(f"url is not a valid http(s) URL: {self.url}")
        elif self.source_type not in URL_OPTIONAL_TYPES:
            raise ValueError(f"url is required for {self.source_type} sources")


@dataclass
class Post:
    """A normalized item ingested from a source."""
    source: str              # Source.name, matched by string only
    external_id: str         # the upstream's native identifier
    title: str
    url: str
    author: str
    posted_at: datetime
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    priority_score: float | None = None
    status: PostStatus = PostStatus.UNREAD
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def tags_json(self) -> str:
        return json.dumps(self.tags)
