"""Process-level configuration for the recruitment engine."""

from __future__ import annotations

import dataclasses
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from srpg_recruitment.domain.rules_config import DEFAULT_RULES, RulesConfig


class Settings(BaseSettings):
    """Application settings, read from the environment and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="SRPG_RECRUITMENT_"
    )

    data_dir: Path = Field(default=Path("saves"), description="Where roster snapshots live")
    log_level: str = Field(default="INFO", description="Root logging level for the CLI")
    max_npcs_per_stage: int = Field(
        default=DEFAULT_RULES.npc.max_npcs_per_stage,
        description="How many units may be held in NPC state at once",
        ge=1,
    )
    monitor_enabled: bool = Field(
        default=DEFAULT_RULES.monitor.enabled, description="Sample and act on performance metrics"
    )
    deferred_notifications: bool = Field(
        default=DEFAULT_RULES.notifications.deferred,
        description="Queue recruitment events and deliver them on tick",
    )

    def to_rules(self, base: RulesConfig = DEFAULT_RULES) -> RulesConfig:
        """Overlay these settings onto ``base``."""

        return dataclasses.replace(
            base,
            npc=dataclasses.replace(base.npc, max_npcs_per_stage=self.max_npcs_per_stage),
            monitor=dataclasses.replace(base.monitor, enabled=self.monitor_enabled),
            notifications=dataclasses.replace(
                base.notifications, deferred=self.deferred_notifications
            ),
        )


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings
