from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    @field_validator("log_level", mode="after")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    # Arena
    grid_size: int = 15
    food_points: int = 10
    bug_penalty: int = 20
    bug_floor: int = 3  # Minimum bugs kept on the grid
    block_reverse_direction: bool = False  # Ignore turns straight back into the neck
    game_seed: int | None = None

    # Timers
    game_loop_enabled: bool = True
    tick_interval_ms: int = 250
    countdown_interval_ms: int = 1000
    countdown_start: int = 3

    # Code evaluator sandbox
    evaluator_max_steps: int = 100_000
    evaluator_timeout_seconds: float = 2.0
    evaluator_max_call_depth: int = 50
    evaluator_max_output_lines: int = 200

    # Metrics
    metrics_enabled: bool = True

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
