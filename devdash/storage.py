"""
Source/Post persistence: Supabase when configured, in-memory otherwise.

Supabase schema (create once):

    CREATE TABLE sources (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      source_type TEXT NOT NULL,
      url TEXT,
      url_key TEXT GENERATED ALWAYS AS (lower(url)) STORED,
      config JSONB NOT NULL DEFAULT '{}',
      active BOOLEAN DEFAULT true,
      auto_fetch_enabled BOOLEAN DEFAULT true,
      status TEXT DEFAULT '',
      last_fetched_at TIMESTAMPTZ
    );
    CREATE UNIQUE INDEX sources_url_key ON sources (url_key);

    CREATE TABLE posts (
      id TEXT PRIMARY KEY,
      source TEXT NOT NULL,
      external_id TEXT NOT NULL,
      title TEXT NOT NULL,
      url TEXT NOT NULL,
      author TEXT NOT NULL,
      summary TEXT DEFAULT '',
      tags TEXT DEFAULT '[]',
      posted_at TIMESTAMPTZ NOT NULL,
      priority_score DOUBLE PRECISION,
      status TEXT NOT NULL DEFAULT 'unread',
      created_at TIMESTAMPTZ DEFAULT now(),
      UNIQUE(source, external_id)
    );
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from devdash.config import settings
from devdash.models import Post, PostStatus, Source, parse_tags
from devdash.utils.logging import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    pass


class DuplicateSourceError(StorageError):
    pass


class DuplicatePostError(StorageError):
    pass


class NotFoundError(StorageError):
    pass


class BaseStore(ABC):
    """Async persistence interface used by the pipeline and the API."""

    @abstractmethod
    async def add_source(self, source: Source) -> Source:
        """Insert a source. Raises DuplicateSourceError on a url clash (case-insensitive)."""

    @abstractmethod
    async def get_source(self, source_id: str) -> Source | None: ...

    @abstractmethod
    async def list_sources(
        self, active: bool | None = None, auto_fetch_enabled: bool | None = None
    ) -> list[Source]: ...

    @abstractmethod
    async def save_source_status(self, source: Source) -> None:
        """Persist ``status`` and ``last_fetched_at`` of an existing source."""

    @abstractmethod
    async def find_post(self, source: str, external_id: str) -> Post | None: ...

    @abstractmethod
    async def add_post(self, post: Post) -> Post:
        """Insert a post. Raises DuplicatePostError if (source, external_id) exists."""

    @abstractmethod
    async def get_post(self, post_id: str) -> Post | None: ...

    @abstractmethod
    async def list_posts(
        self,
        source: str | None = None,
        status: PostStatus | None = None,
        order: str = "priority",
        limit: int | None = None,
    ) -> list[Post]: ...

    @abstractmethod
    async def update_post_status(self, post_id: str, status: PostStatus) -> Post: ...

    @abstractmethod
    async def delete_posts_before(self, cutoff: datetime) -> int: ...


def _sort_posts(posts: list[Post], order: str) -> list[Post]:
    if order == "recent":
        return sorted(posts, key=lambda p: p.posted_at, reverse=True)
    return sorted(
        posts,
        key=lambda p: (p.priority_score if p.priority_score is not None else float("-inf"), p.posted_at),
        reverse=True,
    )


class InMemoryStore(BaseStore):
    """Process-local store; the default when Supabase isn't configured."""

    def __init__(self) -> None:
        self._sources: dict[str, Source] = {}
        self._posts: dict[str, Post] = {}
        self._post_keys: dict[tuple[str, str], str] = {}

    async def add_source(self, source: Source) -> Source:
        source.validate()
        if source.url:
            url_key = source.url.lower()
            for existing in self._sources.values():
                if existing.url and existing.url.lower() == url_key:
                    raise DuplicateSourceError(f"url has already been added: {source.url}")
        self._sources[source.id] = source
        return source

    async def get_source(self, source_id: str) -> Source | None:
        return self._sources.get(source_id)

    async def list_sources(
        self, active: bool | None = None, auto_fetch_enabled: bool | None = None
    ) -> list[Source]:
        sources = list(self._sources.values())
        if active is not None:
            sources = [s for s in sources if s.active == active]
        if auto_fetch_enabled is not None:
            sources = [s for s in sources if s.auto_fetch_enabled == auto_fetch_enabled]
        return sources

    async def save_source_status(self, source: Source) -> None:
        stored = self._sources.get(source.id)
        if stored is None:
            raise NotFoundError(f"source {source.id} not found")
        stored.status = source.status
        stored.last_fetched_at = source.last_fetched_at

    async def find_post(self, source: str, external_id: str) -> Post | None:
        post_id = self._post_keys.get((source, external_id))
        return self._posts.get(post_id) if post_id else None

    async def add_post(self, post: Post) -> Post:
        key = (post.source, post.external_id)
        if key in self._post_keys:
            raise DuplicatePostError(f"post already exists: {key}")
        self._post_keys[key] = post.id
        self._posts[post.id] = post
        return post

    async def get_post(self, post_id: str) -> Post | None:
        return self._posts.get(post_id)

    async def list_posts(
        self,
        source: str | None = None,
        status: PostStatus | None = None,
        order: str = "priority",
        limit: int | None = None,
    ) -> list[Post]:
        posts = list(self._posts.values())
        if source is not None:
            posts = [p for p in posts if p.source == source]
        if status is not None:
            posts = [p for p in posts if p.status == status]
        posts = _sort_posts(posts, order)
        return posts[:limit] if limit is not None else posts

    async def update_post_status(self, post_id: str, status: PostStatus) -> Post:
        post = self._posts.get(post_id)
        if post is None:
            raise NotFoundError(f"post {post_id} not found")
        post.status = status
        return post

    async def delete_posts_before(self, cutoff: datetime) -> int:
        stale = [p for p in self._posts.values() if p.posted_at < cutoff]
        for post in stale:
            del self._posts[post.id]
            del self._post_keys[(post.source, post.external_id)]
        return len(stale)


def _source_to_row(source: Source) -> dict[str, Any]:
    return {
        "id": source.id,
        "name": source.name,
        "source_type": source.source_type,
        "url": source.url,
        "config": source.config,
        "active": source.active,
        "auto_fetch_enabled": source.auto_fetch_enabled,
        "status": source.status,
        "last_fetched_at": source.last_fetched_at.isoformat() if source.last_fetched_at else None,
    }


def _row_to_source(row: dict[str, Any]) -> Source:
    last = row.get("last_fetched_at")
    return Source(
        id=row["id"],
        name=row["name"],
        source_type=row["source_type"],
        url=row.get("url"),
        config=row.get("config") or {},
        active=bool(row.get("active", True)),
        auto_fetch_enabled=bool(row.get("auto_fetch_enabled", True)),
        status=row.get("status") or "",
        last_fetched_at=datetime.fromisoformat(last) if last else None,
    )


def _post_to_row(post: Post) -> dict[str, Any]:
    return {
        "id": post.id,
        "source": post.source,
        "external_id": post.external_id,
        "title": post.title,
        "url": post.url,
        "author": post.author,
        "summary": post.summary,
        "tags": post.tags_json,
        "posted_at": post.posted_at.isoformat(),
        "priority_score": post.priority_score,
        "status": post.status.value,
        "created_at": post.created_at.isoformat(),
    }


def _row_to_post(row: dict[str, Any]) -> Post:
    return Post(
        id=row["id"],
        source=row["source"],
        external_id=row["external_id"],
        title=row["title"],
        url=row["url"],
        author=row["author"],
        summary=row.get("summary") or "",
        tags=parse_tags(row.get("tags")),
        posted_at=datetime.fromisoformat(row["posted_at"]),
        priority_score=row.get("priority_score"),
        status=PostStatus(row.get("status") or PostStatus.UNREAD.value),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _is_unique_violation(exc: Exception) -> bool:
    # Postgres unique_violation surfaces through PostgREST as code 23505
    code = getattr(exc, "code", None)
    return code == "23505" or "duplicate key" in str(exc).lower()


class SupabaseStore(BaseStore):
    """Store backed by Supabase (PostgREST) tables ``sources`` and ``posts``."""

    def __init__(self, client) -> None:
        self.client = client

    async def add_source(self, source: Source) -> Source:
        source.validate()
        if source.url:
            result = (
                self.client.table("sources")
                .select("id")
                .eq("url_key", source.url.lower())
                .limit(1)
                .execute()
            )
            if result.data:
                raise DuplicateSourceError(f"url has already been added: {source.url}")
        try:
            self.client.table("sources").insert(_source_to_row(source)).execute()
        except Exception as exc:
            if _is_unique_violation(exc):
                raise DuplicateSourceError(f"url has already been added: {source.url}") from exc
            raise
        return source

    async def get_source(self, source_id: str) -> Source | None:
        result = self.client.table("sources").select("*").eq("id", source_id).limit(1).execute()
        return _row_to_source(result.data[0]) if result.data else None

    async def list_sources(
        self, active: bool | None = None, auto_fetch_enabled: bool | None = None
    ) -> list[Source]:
        query = self.client.table("sources").select("*")
        if active is not None:
            query = query.eq("active", active)
        if auto_fetch_enabled is not None:
            query = query.eq("auto_fetch_enabled", auto_fetch_enabled)
        return [_row_to_source(row) for row in query.execute().data]

    async def save_source_status(self, source: Source) -> None:
        self.client.table("sources").update(
            {
                "status": source.status,
                "last_fetched_at": source.last_fetched_at.isoformat() if source.last_fetched_at else None,
            }
        ).eq("id", source.id).execute()

    async def find_post(self, source: str, external_id: str) -> Post | None:
        result = (
            self.client.table("posts")
            .select("*")
            .eq("source", source)
            .eq("external_id", external_id)
            .limit(1)
            .execute()
        )
        return _row_to_post(result.data[0]) if result.data else None

    async def add_post(self, post: Post) -> Post:
        try:
            self.client.table("posts").insert(_post_to_row(post)).execute()
        except Exception as exc:
            if _is_unique_violation(exc):
                raise DuplicatePostError(f"post already exists: {(post.source, post.external_id)}") from exc
            raise
        return post

    async def get_post(self, post_id: str) -> Post | None:
        result = self.client.table("posts").select("*").eq("id", post_id).limit(1).execute()
        return _row_to_post(result.data[0]) if result.data else None

    async def list_posts(
        self,
        source: str | None = None,
        status: PostStatus | None = None,
        order: str = "priority",
        limit: int | None = None,
    ) -> list[Post]:
        query = self.client.table("posts").select("*")
        if source is not None:
            query = query.eq("source", source)
        if status is not None:
            query = query.eq("status", status.value)
        if order == "recent":
            query = query.order("posted_at", desc=True)
        else:
            query = query.order("priority_score", desc=True, nullsfirst=False)
        if limit is not None:
            query = query.limit(limit)
        return [_row_to_post(row) for row in query.execute().data]

    async def update_post_status(self, post_id: str, status: PostStatus) -> Post:
        result = self.client.table("posts").update({"status": status.value}).eq("id", post_id).execute()
        if not result.data:
            raise NotFoundError(f"post {post_id} not found")
        return _row_to_post(result.data[0])

    async def delete_posts_before(self, cutoff: datetime) -> int:
        result = self.client.table("posts").delete().lt("posted_at", cutoff.isoformat()).execute()
        return len(result.data or [])


def _get_supabase_client():
    """Return a Supabase client or None if credentials are absent."""
    if not settings.supabase_url or not settings.supabase_key:
        return None
    try:
        from supabase import create_client
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as exc:
        logger.warning("supabase_client_init_failed", error=str(exc))
        return None


_store: BaseStore | None = None


def get_store() -> BaseStore:
    """Return the process-wide store, creating it on first use."""
    global _store
    if _store is None:
        client = _get_supabase_client()
        if client is None:
            logger.info("store_selected", backend="memory")
            _store = InMemoryStore()
        else:
            logger.info("store_selected", backend="supabase")
            _store = SupabaseStore(client)
    return _store


def reset_store() -> None:
    global _store
    _store = None
