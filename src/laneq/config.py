from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LANEQ_", env_file=".env", extra="ignore")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Queue layout
    channel: str = "queue"
    # Comma separated, highest precedence first
    priorities: str = "default"
    default_ttr: int = 300

    # Moving lease
    moving_lock_ttl: int = 1
    lock_wait_initial: float = 0.01
    lock_wait_max: float = 0.5
    lock_wait_multiplier: float = 2.0

    # Worker
    worker_timeout: int = 3
    worker_error_backoff: float = 1.0

    # Observability
    enable_metrics: bool = True
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def priority_lanes(self) -> tuple[str, ...]:
        """Configured lanes in dispatch order."""
        lanes = tuple(lane.strip() for lane in self.priorities.split(",") if lane.strip())
        return lanes or ("default",)


settings = Settings()
