from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "BoosterBattle"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/boosterbattle"

    # Header set by the auth gateway carrying the authenticated user id
    user_id_header: str = "X-User-Id"

    # Pack timers
    min_delay_hours: int = 4
    max_delay_hours: int = 24
    max_open_timers_per_pack_type: int = 5

    # Gold chance at min_delay_hours / max_delay_hours
    min_gold_chance_percent: float = 1.0
    max_gold_chance_percent: float = 20.0

    # Pack endpoint rate limit (per player, sliding window)
    claim_requests_per_window: int = 10
    claim_window_seconds: int = 60


settings = Settings()
