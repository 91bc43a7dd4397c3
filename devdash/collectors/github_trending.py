"""
Approximates GitHub Trending with the repository search API.

GitHub has no trending endpoint, so three date-windowed searches per ``since``
value are merged, deduplicated by repo id and ranked. With ``use_scraper``
the github.com/trending page itself is parsed instead, which also yields
stars gained today.
"""

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

from bs4 import BeautifulSoup

from devdash.collectors.base import BaseCollector, CandidateRecord, parse_iso
from devdash.collectors.github_issues import GITHUB_RATE_LIMIT_HINT, github_headers
from devdash.config import settings
from devdash.errors import FetchError
from devdash.utils.logging import get_logger

logger = get_logger(__name__)

_API_URL = "https://api.github.com/search/repositories"
_TRENDING_PAGE_URL = "https://github.com/trending"
_STARS_TODAY_RE = re.compile(r"([\d,]+)\s+stars?\s+today", re.IGNORECASE)
_PER_QUERY = 15
_POPULAR_STARS = 100

# since -> [(created|pushed, days back, min stars, sort)]
_WINDOWS: dict[str, list[tuple[str, int, int, str]]] = {
    "daily": [
        ("created", 1, 1, "stars"),
        ("pushed", 1, 50, "updated"),
        ("pushed", 7, 200, "stars"),
    ],
    "weekly": [
        ("created", 7, 5, "stars"),
        ("pushed", 7, 100, "updated"),
        ("pushed", 30, 1000, "stars"),
    ],
    "monthly": [
        ("created", 30, 3, "stars"),
        ("pushed", 30, 50, "updated"),
        ("pushed", 90, 500, "stars"),
    ],
}


def build_queries(since: str, language: str | None, today: date) -> list[dict[str, str]]:
    windows = _WINDOWS.get(since, _WINDOWS["daily"])
    language_filter = f" language:{language}" if language else ""
    queries = []
    for qualifier, days, min_stars, sort in windows:
        cutoff = (today - timedelta(days=days)).strftime("%Y-%m-%d")
        queries.append(
            {
                "q": f"{qualifier}:>{cutoff} stars:>{min_stars}{language_filter}",
                "sort": sort,
                "order": "desc",
                "per_page": str(_PER_QUERY),
            }
        )
    return queries


def trending_rank(repo: dict[str, Any], now: datetime) -> float:
    """Order repositories: log-scaled stars, youth, and fork engagement."""
    stars = repo.get("stargazers_count") or 0
    forks = repo.get("forks_count") or 0
    rank = math.log10(max(stars, 1)) * 10

    created = parse_iso(repo.get("created_at"))
    if created is not None:
        days_old = (now - created).total_seconds() / 86400
        if days_old <= 7:
            rank += max(7 - days_old, 0) * 3

    if stars > 0 and 0.05 <= forks / stars <= 0.3:
        rank += (forks / stars) * 10
    return rank


def _build_summary(repo: dict[str, Any]) -> str:
    parts = []
    if repo.get("description"):
        parts.append(repo["description"])
    if repo.get("stargazers_count"):
        parts.append(f"{repo['stargazers_count']} stars")
    if repo.get("forks_count"):
        parts.append(f"{repo['forks_count']} forks")
    if repo.get("language"):
        parts.append(repo["language"])
    return " | ".join(parts)


def _build_tags(repo: dict[str, Any], now: datetime) -> list[str]:
    tags: list[str] = []
    if repo.get("language"):
        tags.append(repo["language"])
    tags.extend(t for t in repo.get("topics") or [] if t)
    tags.append("trending")

    created = parse_iso(repo.get("created_at"))
    if created is not None and now - created < timedelta(hours=24):
        tags.append("new-repo")
    if (repo.get("stargazers_count") or 0) > _POPULAR_STARS:
        tags.append("popular")

    license_info = repo.get("license")
    if isinstance(license_info, dict) and license_info.get("key"):
        tags.append(f"license:{license_info['key']}")

    return list(dict.fromkeys(tags))


def _parse_count(text: str | None) -> int:
    digits = (text or "").replace(",", "").strip()
    return int(digits) if digits.isdigit() else 0


def parse_trending_page(page: str) -> list[dict[str, Any]]:
    """Repositories listed on the github.com/trending HTML page, in page order."""
    soup = BeautifulSoup(page, "html.parser")
    repos: list[dict[str, Any]] = []

    for position, article in enumerate(soup.select("article.Box-row"), start=1):
        link = article.select_one("h2 a")
        if link is None or not link.get("href"):
            continue
        full_name = "/".join(part.strip() for part in link["href"].strip("/").split("/")[:2])
        author, _, name = full_name.partition("/")
        if not author or not name:
            continue

        description = article.select_one("p")
        language = article.select_one('span[itemprop="programmingLanguage"]')

        stars = forks = 0
        for stat in article.select("a.Link--muted"):
            icon = stat.find("svg")
            classes = (icon.get("class") or []) if icon is not None else []
            if "octicon-star" in classes:
                stars = _parse_count(stat.get_text())
            elif "octicon-repo-forked" in classes:
                forks = _parse_count(stat.get_text())

        stars_today = 0
        today = article.select_one("span.float-sm-right")
        if today is not None:
            match = _STARS_TODAY_RE.search(today.get_text(" ", strip=True))
            if match:
                stars_today = _parse_count(match.group(1))

        repos.append(
            {
                "full_name": full_name,
                "author": author,
                "name": name,
                "url": f"https://github.com/{full_name}",
                "description": description.get_text(" ", strip=True) if description else "",
                "language": language.get_text(strip=True) if language else None,
                "stars": stars,
                "forks": forks,
                "stars_today": stars_today,
                "rank": _parse_count(article.get("data-position")) or position,
            }
        )
    return repos


def _scraped_summary(repo: dict[str, Any]) -> str:
    parts = []
    if repo["description"]:
        parts.append(repo["description"])
    if repo["stars_today"]:
        parts.append(f"{repo['stars_today']} stars today")
    if repo["stars"]:
        parts.append(f"{repo['stars']} total stars")
    if repo["forks"]:
        parts.append(f"{repo['forks']} forks")
    if repo["language"]:
        parts.append(repo["language"])
    return " | ".join(parts)


def _scraped_tags(repo: dict[str, Any]) -> list[str]:
    tags: list[str] = []
    if repo["language"]:
        tags.append(repo["language"])
    tags.append("trending")
    if repo["stars_today"] >= 100:
        tags.append("hot")
    elif repo["stars_today"] >= 20:
        tags.append("rising")
    if repo["stars"] > 1000:
        tags.append("popular")
    if 1 <= repo["rank"] <= 10:
        tags.append("top-10")
    return tags


class GitHubTrendingCollector(BaseCollector):
    source_type = "github_trending"
    rate_limit_hint = GITHUB_RATE_LIMIT_HINT

    def headers(self) -> dict[str, str]:
        if self.use_scraper:
            return {"User-Agent": settings.user_agent, "Accept": "text/html"}
        token = self.config.get("token") or settings.github_token
        return github_headers(settings.user_agent, token)

    @property
    def use_scraper(self) -> bool:
        return self.config.get("use_scraper") is True

    @property
    def language(self) -> str | None:
        preferred = self.source.config_list("preferred_languages")
        return self.config.get("language") or (preferred[0] if preferred else None)

    async def fetch(self) -> list[dict]:
        since = self.config.get("since") or "daily"
        if self.use_scraper:
            return await self._scrape(since)

        queries = build_queries(since, self.language, datetime.now(timezone.utc).date())

        repos: list[dict] = []
        errors: list[FetchError] = []
        async with self.client() as client:
            for params in queries:
                try:
                    data = await self.get_json(client, _API_URL, params=params)
                except FetchError as exc:
                    logger.warning(
                        "github_trending_query_failed",
                        source=self.source.name,
                        query=params["q"],
                        error=exc.detail,
                    )
                    errors.append(exc)
                    continue
                if isinstance(data, dict):
                    repos.extend(data.get("items") or [])

        if errors and len(errors) == len(queries):
            raise errors[0]
        return repos

    def parse(self, payload: list[dict]) -> list[CandidateRecord]:
        if self.use_scraper:
            return self._parse_scraped(payload)

        now = datetime.now(timezone.utc)
        unique: dict[Any, dict] = {}
        for repo in payload:
            if isinstance(repo, dict) and repo.get("id") is not None:
                unique.setdefault(repo["id"], repo)

        ranked = sorted(unique.values(), key=lambda r: trending_rank(r, now), reverse=True)

        records: list[CandidateRecord] = []
        for repo in ranked[: self.max_items]:
            full_name = repo.get("full_name") or ""
            description = repo.get("description") or ""
            owner = repo.get("owner") or {}
            records.append(
                CandidateRecord(
                    external_id=str(repo["id"]),
                    title=f"{full_name} - {description}",
                    url=repo.get("html_url") or "",
                    author=owner.get("login") or "unknown",
                    posted_at=parse_iso(repo.get("created_at")),
                    summary=_build_summary(repo),
                    tags=_build_tags(repo, now),
                    raw_metrics={
                        "stars": float(repo.get("stargazers_count") or 0),
                        "forks": float(repo.get("forks_count") or 0),
                        "watchers": float(repo.get("watchers_count") or 0),
                    },
                    language=repo.get("language"),
                )
            )
        return records

    async def _scrape(self, since: str) -> list[dict]:
        params = {"since": since}
        if self.language:
            params["language"] = self.language
        async with self.client() as client:
            response = await self.get(client, _TRENDING_PAGE_URL, params=params)
        return parse_trending_page(response.text)

    def _parse_scraped(self, payload: list[dict]) -> list[CandidateRecord]:
        records: list[CandidateRecord] = []
        seen: set[str] = set()
        for repo in payload:
            if repo["full_name"] in seen:
                continue
            seen.add(repo["full_name"])
            records.append(
                CandidateRecord(
                    external_id=repo["full_name"],
                    title=f"{repo['full_name']} - {repo['description']}",
                    url=repo["url"],
                    author=repo["author"],
                    summary=_scraped_summary(repo),
                    tags=_scraped_tags(repo),
                    raw_metrics={
                        "stars": float(repo["stars"]),
                        "forks": float(repo["forks"]),
                        "stars_today": float(repo["stars_today"]),
                    },
                    language=repo["language"],
                )
            )
            if len(records) >= self.max_items:
                break
        return records
