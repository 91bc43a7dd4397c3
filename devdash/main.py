from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Literal

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, status
from pydantic import BaseModel, Field

from devdash.config import settings
from devdash.models import Post, PostStatus, Source
from devdash.notifier import StatusNotifier, get_notifier
from devdash.pipeline import fetch_source, refresh_all
from devdash.storage import BaseStore, DuplicateSourceError, NotFoundError, get_store
from devdash.utils.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Only start the scheduler in non-test environments
    scheduler = None
    if settings.app_env != "test":
        from devdash.scheduler import create_scheduler

        scheduler = create_scheduler()
        scheduler.start()
        logger.info("scheduler_started", jobs=len(scheduler.get_jobs()))

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


app = FastAPI(
    title="DevDashboard",
    description=(
        "Aggregates developer posts from GitHub, Reddit, Discourse forums, RSS feeds "
        "and Hacker News into one deduplicated, prioritised feed."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


# --------------------------------------------------------------------------- #
# Schemas
# --------------------------------------------------------------------------- #


class SourceCreate(BaseModel):
    name: str = Field(min_length=1)
    source_type: str = Field(min_length=1)
    url: str | None = None
    config: dict[str, Any] | str | None = None
    active: bool = True
    auto_fetch_enabled: bool = True


class SourceOut(BaseModel):
    id: str
    name: str
    source_type: str
    url: str | None
    config: dict[str, Any]
    active: bool
    auto_fetch_enabled: bool
    status: str
    last_fetched_at: datetime | None

    @classmethod
    def from_source(cls, source: Source) -> "SourceOut":
        return cls(
            id=source.id,
            name=source.name,
            source_type=source.source_type,
            url=source.url,
            config=source.config,
            active=source.active,
            auto_fetch_enabled=source.auto_fetch_enabled,
            status=source.status,
            last_fetched_at=source.last_fetched_at,
        )


class PostOut(BaseModel):
    id: str
    source: str
    external_id: str
    title: str
    url: str
    author: str
    summary: str
    tags: list[str]
    posted_at: datetime
    priority_score: float | None
    status: PostStatus

    @classmethod
    def from_post(cls, post: Post) -> "PostOut":
        return cls(
            id=post.id,
            source=post.source,
            external_id=post.external_id,
            title=post.title,
            url=post.url,
            author=post.author,
            summary=post.summary,
            tags=post.tags,
            posted_at=post.posted_at,
            priority_score=post.priority_score,
            status=post.status,
        )


class PostStatusUpdate(BaseModel):
    status: PostStatus


# --------------------------------------------------------------------------- #
# Routes
# --------------------------------------------------------------------------- #


@app.get("/health", tags=["Health"])
async def health():
    return {
        "status": "ok",
        "service": "devdash",
        "environment": settings.app_env,
    }


@app.get("/sources", response_model=list[SourceOut], tags=["Sources"])
async def list_sources(store: BaseStore = Depends(get_store)):
    return [SourceOut.from_source(s) for s in await store.list_sources()]


@app.post("/sources", response_model=SourceOut, status_code=status.HTTP_201_CREATED, tags=["Sources"])
async def create_source(body: SourceCreate, store: BaseStore = Depends(get_store)):
    source = Source(
        name=body.name,
        source_type=body.source_type,
        url=body.url or None,
        config=body.config,
        active=body.active,
        auto_fetch_enabled=body.auto_fetch_enabled,
    )
    try:
        await store.add_source(source)
    except DuplicateSourceError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    logger.info("source_created", source=source.name, source_type=source.source_type)
    return SourceOut.from_source(source)


@app.post("/sources/refresh", status_code=status.HTTP_202_ACCEPTED, tags=["Sources"])
async def refresh_sources(
    background_tasks: BackgroundTasks,
    store: BaseStore = Depends(get_store),
    notifier: StatusNotifier = Depends(get_notifier),
):
    background_tasks.add_task(refresh_all, store, notifier)
    return {"status": "refresh started"}


@app.post("/sources/{source_id}/refresh", status_code=status.HTTP_202_ACCEPTED, tags=["Sources"])
async def refresh_source(
    source_id: str,
    background_tasks: BackgroundTasks,
    store: BaseStore = Depends(get_store),
    notifier: StatusNotifier = Depends(get_notifier),
):
    source = await store.get_source(source_id)
    if source is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="source not found")
    background_tasks.add_task(fetch_source, source, store, notifier)
    return {"status": "refresh started", "source_id": source_id}


@app.get("/posts", response_model=list[PostOut], tags=["Posts"])
async def list_posts(
    source: str | None = None,
    post_status: PostStatus | None = Query(default=None, alias="status"),
    order: Literal["priority", "recent"] = "priority",
    limit: int = Query(default=100, ge=1, le=500),
    store: BaseStore = Depends(get_store),
):
    posts = await store.list_posts(source=source, status=post_status, order=order, limit=limit)
    return [PostOut.from_post(p) for p in posts]


@app.patch("/posts/{post_id}", response_model=PostOut, tags=["Posts"])
async def update_post(post_id: str, body: PostStatusUpdate, store: BaseStore = Depends(get_store)):
    try:
        post = await store.update_post_status(post_id, body.status)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="post not found") from exc
    return PostOut.from_post(post)
