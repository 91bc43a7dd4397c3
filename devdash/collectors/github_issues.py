from typing import Any
from urllib.parse import urlparse

from devdash.collectors.base import BaseCollector, CandidateRecord, parse_iso, truncate
from devdash.config import settings
from devdash.errors import InvalidRequest

_API_URL = "https://api.github.com/repos/{owner}/{repo}/issues"
_SUMMARY_LEN = 300

GITHUB_RATE_LIMIT_HINT = "Add a GitHub token."


def github_headers(user_agent: str, token: str) -> dict[str, str]:
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": user_agent,
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def parse_repo_url(url: str | None) -> tuple[str, str] | None:
    """Extract (owner, repo) from https://github.com/owner/repo[.git]."""
    if not url:
        return None
    parsed = urlparse(url)
    if not parsed.netloc.lower().endswith("github.com"):
        return None
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        return None
    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return (owner, repo) if owner and repo else None


def count_reactions(reactions: Any) -> int:
    if not isinstance(reactions, dict):
        return 0
    total = reactions.get("total_count")
    if isinstance(total, int):
        return total
    return sum(
        value
        for key, value in reactions.items()
        if key != "url" and isinstance(value, int) and not isinstance(value, bool)
    )


class GitHubIssuesCollector(BaseCollector):
    """Open issues of one repository via the GitHub REST API."""

    source_type = "github"
    rate_limit_hint = GITHUB_RATE_LIMIT_HINT

    def headers(self) -> dict[str, str]:
        token = self.config.get("token") or settings.github_token
        return github_headers(settings.user_agent, token)

    async def fetch(self) -> list[dict]:
        repo = parse_repo_url(self.source.url)
        if repo is None:
            raise InvalidRequest("invalid GitHub repository URL")
        owner, name = repo

        params = {
            "state": "open",
            "sort": "updated",
            "direction": "desc",
            "per_page": self.max_items,
        }
        labels = self.source.config_list("labels")
        if labels:
            params["labels"] = ",".join(labels)

        async with self.client() as client:
            data = await self.get_json(client, _API_URL.format(owner=owner, repo=name), params=params)
        return data if isinstance(data, list) else []

    def parse(self, payload: list[dict]) -> list[CandidateRecord]:
        records: list[CandidateRecord] = []
        for issue in payload:
            # The issues endpoint also lists pull requests
            if not isinstance(issue, dict) or issue.get("pull_request"):
                continue
            number = issue.get("number")
            if number is None:
                continue

            labels = [
                lbl["name"]
                for lbl in issue.get("labels") or []
                if isinstance(lbl, dict) and lbl.get("name")
            ]
            user = issue.get("user") or {}

            records.append(
                CandidateRecord(
                    external_id=str(number),
                    title=issue.get("title") or "",
                    url=issue.get("html_url") or "",
                    author=user.get("login") or "unknown",
                    posted_at=parse_iso(issue.get("created_at")),
                    summary=truncate(issue.get("body"), _SUMMARY_LEN),
                    tags=labels,
                    raw_metrics={
                        "comments": float(issue.get("comments") or 0),
                        "reactions": float(count_reactions(issue.get("reactions"))),
                    },
                )
            )
        return records
