from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
import json
import logging
from typing import Any

from jobagent.connectors.base import FreshnessPolicy
from jobagent.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SourceConfig:
    id: str
    name: str
    enabled: bool
    priority: int
    max_jobs: int
    description: str
    freshness: FreshnessPolicy
    requires_auth: bool = False
    auth_settings: tuple[str, ...] = field(default_factory=tuple)


SOURCES: tuple[SourceConfig, ...] = (
    SourceConfig(
        id="linkedin-public",
        name="LinkedIn Public API",
        enabled=True,
        priority=1,
        max_jobs=100,
        description="LinkedIn guest job search, last 24 hours, no auth required",
        freshness=FreshnessPolicy(horizon=timedelta(hours=24), missing_date="accept"),
    ),
    SourceConfig(
        id="adzuna",
        name="Adzuna API",
        enabled=True,
        priority=2,
        max_jobs=100,
        description="Adzuna official API aggregating jobs from many boards",
        freshness=FreshnessPolicy(horizon=timedelta(hours=24), missing_date="accept"),
        requires_auth=True,
        auth_settings=("adzuna_app_id", "adzuna_api_key"),
    ),
    SourceConfig(
        id="rss",
        name="RSS Feeds",
        enabled=True,
        priority=3,
        max_jobs=50,
        description="RemoteOK, Hacker News, We Work Remotely, Remotive and Lobsters feeds",
        freshness=FreshnessPolicy(horizon=timedelta(days=3), missing_date="discard"),
    ),
    SourceConfig(
        id="linkedin",
        name="LinkedIn Scraper (Requires Login)",
        enabled=False,
        priority=10,
        max_jobs=50,
        description="LinkedIn search page scrape through a browser; requires an account",
        freshness=FreshnessPolicy(horizon=timedelta(days=7), missing_date="accept"),
        requires_auth=True,
        auth_settings=("linkedin_email", "linkedin_password"),
    ),
    SourceConfig(
        id="indeed",
        name="Indeed Scraper",
        enabled=False,
        priority=11,
        max_jobs=50,
        description="Indeed search page scrape through a browser; bot detection may block it",
        freshness=FreshnessPolicy(horizon=timedelta(days=7), missing_date="accept"),
    ),
)


def get_sources(settings: Settings) -> list[SourceConfig]:
    overrides = parse_source_overrides(settings.source_overrides_json)
    sources: list[SourceConfig] = []
    for source in SOURCES:
        override = overrides.get(source.id)
        sources.append(replace(source, **override) if override else source)
    return sources


def get_source(settings: Settings, source_id: str) -> SourceConfig | None:
    return next((source for source in get_sources(settings) if source.id == source_id), None)


def has_required_auth(source: SourceConfig, settings: Settings) -> bool:
    if not source.requires_auth:
        return True
    if not source.auth_settings:
        return False
    return all(str(getattr(settings, name, "") or "").strip() for name in source.auth_settings)


def missing_auth_settings(source: SourceConfig, settings: Settings) -> list[str]:
    if not source.requires_auth:
        return []
    return ["JSA_" + name.upper() for name in source.auth_settings if not str(getattr(settings, name, "") or "").strip()]


def enabled_sources(settings: Settings) -> list[SourceConfig]:
    return sorted((source for source in get_sources(settings) if source.enabled), key=lambda source: source.priority)


def available_sources(settings: Settings) -> list[SourceConfig]:
    return [source for source in enabled_sources(settings) if has_required_auth(source, settings)]


def source_stats(settings: Settings) -> dict[str, Any]:
    enabled = enabled_sources(settings)
    available = available_sources(settings)
    missing_auth = [source for source in enabled if not has_required_auth(source, settings)]
    return {
        "total": len(SOURCES),
        "enabled": len(enabled),
        "available": len(available),
        "missing_auth": [
            {"id": source.id, "name": source.name, "required": ["JSA_" + name.upper() for name in source.auth_settings]}
            for source in missing_auth
        ],
        "sources": [
            {
                "id": source.id,
                "name": source.name,
                "enabled": source.enabled,
                "available": source in available,
                "priority": source.priority,
                "max_jobs": source.max_jobs,
                "description": source.description,
                "staleness_horizon_hours": source.freshness.horizon.total_seconds() / 3600.0,
                "missing_date_policy": source.freshness.missing_date,
            }
            for source in sorted(get_sources(settings), key=lambda source: source.priority)
        ],
    }


def parse_source_overrides(raw: str | None) -> dict[str, dict[str, Any]]:
    """Parse ``{"rss": {"enabled": false, "max_jobs": 20}}`` style overrides; unknown keys are ignored."""
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("ignoring malformed source overrides json")
        return {}
    if not isinstance(decoded, dict):
        return {}

    parsed: dict[str, dict[str, Any]] = {}
    for source_id, rules in decoded.items():
        if not isinstance(source_id, str) or not isinstance(rules, dict):
            continue
        override: dict[str, Any] = {}
        if isinstance(rules.get("enabled"), bool):
            override["enabled"] = rules["enabled"]
        for key in ("priority", "max_jobs"):
            value = rules.get(key)
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                override[key] = value
        horizon_hours = rules.get("staleness_horizon_hours")
        missing_date = rules.get("missing_date_policy")
        base = next((source for source in SOURCES if source.id == source_id), None)
        if base is not None and (isinstance(horizon_hours, (int, float)) or missing_date in ("accept", "discard")):
            override["freshness"] = FreshnessPolicy(
                horizon=timedelta(hours=horizon_hours) if isinstance(horizon_hours, (int, float)) else base.freshness.horizon,
                missing_date=missing_date if missing_date in ("accept", "discard") else base.freshness.missing_date,
            )
        if override:
            parsed[source_id] = override
    return parsed
