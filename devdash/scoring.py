from dataclasses import dataclass
from datetime import datetime
from typing import Any

from devdash.collectors.base import CandidateRecord

# --------------------------------------------------------------------------- #
# Weights
# --------------------------------------------------------------------------- #

# Per source type: raw metric name -> weight. A source can override any of
# these through its "score_weights" config map.
DEFAULT_WEIGHTS: dict[str, dict[str, float]] = {
    "github": {"comments": 0.5, "reactions": 0.3},
    "github_trending": {"stars": 0.1, "forks": 0.2, "watchers": 0.1, "stars_today": 0.5},
    "reddit": {"score": 0.1, "comments": 0.5},
    "discourse": {"replies": 0.1, "likes": 0.2, "views": 0.001},
    "hacker_news": {"points": 0.1, "comments": 0.05},
    "rss": {},
}

# Per source type: flat content boosts. Overridable through "score_boosts".
DEFAULT_BOOSTS: dict[str, dict[str, float]] = {
    "github": {"helpful_label": 5.0, "bug_label": 3.0, "feature_label": 2.0},
    "github_trending": {"helpful_topic": 2.0},
    "discourse": {"pinned": 2.0, "unanswered_question": 5.0, "priority_tag": 1.0},
    "hacker_news": {
        "ask": 3.0,
        "show": 2.5,
        "top": 1.0,
        "developer_keyword": 0.8,
        "tutorial": 2.0,
        "release": 1.5,
        "open_source": 1.0,
    },
}

# GitHub issue labels, each group counted once
_HELPFUL_LABELS = {"good first issue", "help wanted", "beginner friendly", "easy", "starter"}
_FEATURE_LABELS = {"enhancement", "feature"}

_HELPFUL_TOPICS = {"beginner-friendly", "good-first-issues", "hacktoberfest", "open-source"}

_DEVELOPER_KEYWORDS = [
    "api", "framework", "library", "tutorial", "guide", "developer", "programming",
    "code", "software", "development", "javascript", "python", "ruby", "rails",
    "react", "vue", "angular", "nodejs", "github", "opensource", "release",
]

PREFERENCE_BONUS = 5.0
_RECENCY_WINDOW_HOURS = 10.0
_RECENCY_WEIGHT = 0.3


# --------------------------------------------------------------------------- #
# Result type
# --------------------------------------------------------------------------- #


@dataclass
class ScoredRecord:
    record: CandidateRecord
    score: float


# --------------------------------------------------------------------------- #
# Scoring logic
# --------------------------------------------------------------------------- #


def _overlay(defaults: dict[str, float], overrides: Any) -> dict[str, float]:
    merged = dict(defaults)
    if isinstance(overrides, dict):
        for key, value in overrides.items():
            try:
                merged[key] = float(value)
            except (TypeError, ValueError):
                continue
    return merged


def weights_for(source_type: str, source_config: dict[str, Any]) -> dict[str, float]:
    """Defaults for the type, overlaid with the source's numeric overrides."""
    return _overlay(DEFAULT_WEIGHTS.get(source_type, {}), source_config.get("score_weights"))


def boosts_for(source_type: str, source_config: dict[str, Any]) -> dict[str, float]:
    # Negative boosts are dropped, like negative weights
    boosts = _overlay(DEFAULT_BOOSTS.get(source_type, {}), source_config.get("score_boosts"))
    return {name: value for name, value in boosts.items() if value > 0}


def engagement_score(record: CandidateRecord, weights: dict[str, float]) -> float:
    # Negative weights are ignored so the score never falls as engagement rises
    return sum(
        weight * max(record.raw_metrics.get(metric, 0.0), 0.0)
        for metric, weight in weights.items()
        if weight > 0
    )


def label_boost(record: CandidateRecord, boosts: dict[str, float]) -> float:
    """GitHub issues: helpful, bug and feature label groups, each counted once."""
    labels = {tag.lower() for tag in record.tags}
    boost = 0.0
    if labels & _HELPFUL_LABELS:
        boost += boosts.get("helpful_label", 0.0)
    if "bug" in labels:
        boost += boosts.get("bug_label", 0.0)
    if labels & _FEATURE_LABELS:
        boost += boosts.get("feature_label", 0.0)
    return boost


def topic_boost(record: CandidateRecord, boosts: dict[str, float]) -> float:
    """GitHub trending: per helpful repository topic."""
    matching = {tag.lower() for tag in record.tags} & _HELPFUL_TOPICS
    return len(matching) * boosts.get("helpful_topic", 0.0)


def forum_boost(record: CandidateRecord, boosts: dict[str, float], source_config: dict[str, Any]) -> float:
    """Discourse: pinned topics, unanswered questions, and per matching priority tag."""
    boost = 0.0
    if record.extras.get("pinned"):
        boost += boosts.get("pinned", 0.0)
    if record.extras.get("unanswered_question"):
        boost += boosts.get("unanswered_question", 0.0)

    priority_tags = _config_terms(source_config, "priority_tags")
    matching = {tag.lower() for tag in record.tags} & priority_tags
    boost += len(matching) * boosts.get("priority_tag", 0.0)
    return boost


def story_boost(record: CandidateRecord, boosts: dict[str, float]) -> float:
    """Hacker News: story type plus developer-relevant title keywords."""
    title = record.title.lower()
    boost = boosts.get(record.extras.get("story_type") or "", 0.0)

    matches = sum(1 for keyword in _DEVELOPER_KEYWORDS if keyword in title)
    boost += matches * boosts.get("developer_keyword", 0.0)
    if "tutorial" in title or "guide" in title:
        boost += boosts.get("tutorial", 0.0)
    if "release" in title or "version" in title:
        boost += boosts.get("release", 0.0)
    if "opensource" in title or "open source" in title:
        boost += boosts.get("open_source", 0.0)
    return boost


def content_boost(record: CandidateRecord, source_type: str, source_config: dict[str, Any]) -> float:
    boosts = boosts_for(source_type, source_config)
    if not boosts:
        return 0.0
    if source_type == "github":
        return label_boost(record, boosts)
    if source_type == "github_trending":
        return topic_boost(record, boosts)
    if source_type == "discourse":
        return forum_boost(record, boosts, source_config)
    if source_type == "hacker_news":
        return story_boost(record, boosts)
    return 0.0


def _config_terms(source_config: dict[str, Any], key: str) -> set[str]:
    values = source_config.get(key) or []
    if isinstance(values, str):
        values = values.split(",")
    return {str(v).strip().lower() for v in values if str(v).strip()}


def recency_score(posted_at: datetime | None, now: datetime | None) -> float:
    if posted_at is None or now is None:
        return 0.0
    hours_old = (now - posted_at).total_seconds() / 3600
    return max(_RECENCY_WINDOW_HOURS - hours_old, 0.0) * _RECENCY_WEIGHT


def matches_preferences(record: CandidateRecord, source_config: dict[str, Any]) -> bool:
    """True if the record's language or a tag is a preferred language or priority tag."""
    preferred = _config_terms(source_config, "preferred_languages")
    preferred |= _config_terms(source_config, "priority_tags")
    if not preferred:
        return False

    candidates = {tag.lower() for tag in record.tags}
    if record.language:
        candidates.add(record.language.lower())
    return bool(candidates & preferred)


def score(
    record: CandidateRecord,
    source_type: str,
    source_config: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> float:
    """
    Rank a candidate record. Higher is more interesting.

    - engagement: weighted sum of raw metrics (see DEFAULT_WEIGHTS)
    - content: per-type boosts (issue labels, repo topics, pinned or
      unanswered forum topics, HN story type and keywords), see DEFAULT_BOOSTS
    - recency: only when ``now`` is given, so results stay reproducible
    - preferences: flat PREFERENCE_BONUS when language/tags match the
      source's preferred_languages or priority_tags
    """
    config = source_config or {}
    total = engagement_score(record, weights_for(source_type, config))
    total += content_boost(record, source_type, config)
    total += recency_score(record.posted_at, now)
    if matches_preferences(record, config):
        total += PREFERENCE_BONUS
    return round(total, 4)


def score_all(
    records: list[CandidateRecord],
    source_type: str,
    source_config: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> list[ScoredRecord]:
    return [ScoredRecord(record=r, score=score(r, source_type, source_config, now)) for r in records]
