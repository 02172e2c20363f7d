"""
Configuration settings for the chem-srp practice service.

Uses Pydantic Settings for environment variable management with .env file support.
Every setting can be overridden with an ``SRP_`` prefixed environment variable.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_week_topics() -> dict[int, list[str]]:
    return {
        6: ["organic", "units"],
        7: ["units"],
        8: ["organic"],
        9: ["units"],
        10: ["organic"],
        12: ["organic", "units", "inorganic"],
    }


def _default_topic_labels() -> dict[str, str]:
    return {
        "organic": "Organic Nomenclature",
        "units": "Units / Dimensional Analysis",
        "inorganic": "Inorganic Nomenclature",
    }


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SRP_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Item source
    # ========================================
    item_source: str = Field(
        default="items.csv",
        description="Path or http(s) URL of the item CSV",
    )
    max_answer_len: int = Field(
        default=120,
        ge=1,
        description="Normalized answers are truncated to this many characters",
    )

    # ========================================
    # Results
    # ========================================
    results_url: str | None = Field(
        default=None,
        description="Base URL of the ingest service; local store is used when unset",
    )
    results_database_url: str = Field(
        default="sqlite:///data/results.db",
        description="SQLAlchemy URL of the local result store",
    )
    pending_dir: Path = Field(
        default=Path("outputs/pending"),
        description="Directory holding finalized sessions not yet accepted by the sink",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP timeout for item fetches and result uploads",
    )

    # ========================================
    # Curriculum
    # ========================================
    week_topics: dict[int, list[str]] = Field(
        default_factory=_default_week_topics,
        description="Week -> topics run in order for that week",
    )
    topic_labels: dict[str, str] = Field(
        default_factory=_default_topic_labels,
        description="Display names for topics",
    )
    mastery_required: dict[str, int] = Field(
        default_factory=lambda: {"organic": 1, "units": 1, "inorganic": 1},
        description="Default correct answers needed per item, by topic",
    )
    mastery_overrides: dict[str, int] = Field(
        default_factory=lambda: {"12:inorganic": 4},
        description="'<week>:<topic>' -> mastery goal for that week only",
    )

    # ========================================
    # Presentation
    # ========================================
    feedback_ms: int = Field(
        default=4000,
        ge=0,
        description="How long the CLI shows feedback before the next item",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8100)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def topics_for_week(self, week: int) -> list[str]:
        """Topics configured for a week, in run order (empty if none)."""
        return list(self.week_topics.get(week, []))

    def valid_weeks(self) -> set[int]:
        """Weeks that have at least one topic."""
        return {week for week, topics in self.week_topics.items() if topics}

    def mastery_goal(self, topic: str, week: int) -> int:
        """Correct answers an item needs before it is retired."""
        override = self.mastery_overrides.get(f"{week}:{topic}")
        if override is not None:
            return override
        return self.mastery_required.get(topic, 1)

    def topic_label(self, topic: str) -> str:
        return self.topic_labels.get(topic, topic)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
