"""Application settings via pydantic-settings."""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RewardPolicy(BaseModel):
    """Immutable reward rules handed to the credit engine at construction."""

    sats_per_reward: int = Field(default=100, gt=0)
    daily_max_rewards: int = Field(default=3, gt=0)
    session_ttl_seconds: int = Field(default=300, gt=0)
    min_withdraw_sats: int = Field(default=50000, gt=0)

    model_config = ConfigDict(frozen=True)

    @property
    def session_ttl_ms(self) -> int:
        return self.session_ttl_seconds * 1000


class Settings(BaseSettings):
    """Configuration loaded from environment variables with SATIO_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="SATIO_",
        env_file=".env",
        case_sensitive=False,
    )

    # --- Server ---
    port: int = 3001
    admin_key: str = "change-me"
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"
    log_format: str = "console"

    # --- Storage ---
    database_url: str = "sqlite:///satio.sqlite"
    storage_timeout_seconds: float = Field(default=8.0, gt=0)
    sweep_interval_seconds: float = Field(default=600.0, ge=0)

    # --- Rewards ---
    sats_per_reward: int = Field(default=100, gt=0)
    daily_max_rewards: int = Field(default=3, gt=0)
    session_ttl_seconds: int = Field(default=300, gt=0)
    min_withdraw_sats: int = Field(default=50000, gt=0)

    def reward_policy(self) -> RewardPolicy:
        return RewardPolicy(
            sats_per_reward=self.sats_per_reward,
            daily_max_rewards=self.daily_max_rewards,
            session_ttl_seconds=self.session_ttl_seconds,
            min_withdraw_sats=self.min_withdraw_sats,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
