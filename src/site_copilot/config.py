from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass(frozen=True)
class ScoringConfig:
    threshold: float = 3.0
    audience_caps: Mapping[str, int] = field(
        default_factory=lambda: {"general": 1, "professional": 2, "expert": 3}
    )
    default_cap: int = 2
    max_alternatives: int = 2

    def cap_for(self, audience_level: str | None) -> int:
        if audience_level is None:
            return self.default_cap
        return self.audience_caps.get(audience_level, self.default_cap)


@dataclass(frozen=True)
class Settings:
    environment: str = "dev"
    project_id: str | None = None
    vertex_location: str = "asia-northeast1"
    vertex_model: str = "gemini-1.5-pro"
    preview_base_url: str = "https://preview.exhibit.local"
    max_history: int = 20
    advisor_temperature: float = 0.3
    builder_temperature: float = 0.5
    content_temperature: float = 0.4
    release_events_topic: str = "site-release-events"
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    @property
    def is_dev(self) -> bool:
        return self.environment == "dev"

    def preview_url(self, snapshot_id: str) -> str:
        return f"{self.preview_base_url.rstrip('/')}/preview/{snapshot_id}"


def load_settings() -> Settings:
    """Build settings from environment variables."""
    default_cap = _int_env("RECOMMENDATION_CAP_DEFAULT", 2)
    scoring = ScoringConfig(
        threshold=_float_env("RECOMMENDATION_SCORE_THRESHOLD", 3.0),
        audience_caps={
            "general": _int_env("RECOMMENDATION_CAP_GENERAL", 1),
            "professional": default_cap,
            "expert": _int_env("RECOMMENDATION_CAP_EXPERT", 3),
        },
        default_cap=default_cap,
    )
    return Settings(
        environment=os.getenv("ENVIRONMENT", "dev"),
        project_id=os.getenv("PROJECT_ID"),
        vertex_location=os.getenv("VERTEX_LOCATION", "asia-northeast1"),
        vertex_model=os.getenv("VERTEX_MODEL", "gemini-1.5-pro"),
        preview_base_url=os.getenv("PREVIEW_BASE_URL", "https://preview.exhibit.local"),
        max_history=_int_env("MAX_HISTORY", 20),
        advisor_temperature=_float_env("ADVISOR_TEMPERATURE", 0.3),
        builder_temperature=_float_env("BUILDER_TEMPERATURE", 0.5),
        content_temperature=_float_env("CONTENT_TEMPERATURE", 0.4),
        release_events_topic=os.getenv("PUBSUB_TOPIC_RELEASE_EVENTS", "site-release-events"),
        scoring=scoring,
    )


__all__ = ["ScoringConfig", "Settings", "load_settings"]
