from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    app_env: str = "dev"
    database_url: str = "postgresql+asyncpg://rollflow:rollflow@db:5432/rollflow"
    log_level: str = "INFO"

    # Realtime delivery
    #
    # A push that does not reach a subscriber within the timeout is dropped for that
    # subscriber only; it recovers through the pull endpoint.
    broadcast_send_timeout_sec: float = 2.0
    # Periodic republish of the snapshot; 0 disables the loop.
    snapshot_refresh_interval_sec: float = 30.0
    sse_poll_interval_sec: float = 1.0


settings = Settings()
