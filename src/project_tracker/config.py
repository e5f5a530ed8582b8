"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".project_tracker" / "tracker.db")
    upcoming_days: int = 7
    upcoming_limit: int = 5
    activity_poll_interval: float = 2.0
    log_level: str = "WARNING"
    slack_bot_token: str | None = None
    slack_channel: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("PT_DB_PATH"):
            config.db_path = Path(db)

        if days := os.environ.get("PT_UPCOMING_DAYS"):
            config.upcoming_days = int(days)

        if limit := os.environ.get("PT_UPCOMING_LIMIT"):
            config.upcoming_limit = int(limit)

        if interval := os.environ.get("PT_ACTIVITY_POLL_INTERVAL"):
            config.activity_poll_interval = float(interval)

        if level := os.environ.get("PT_LOG_LEVEL"):
            config.log_level = level.upper()

        config.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN")
        config.slack_channel = os.environ.get("PT_SLACK_CHANNEL")

        return config


def get_config() -> Config:
    return Config.from_env()
