from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./biostate.db"
    log_level: str = "INFO"

    # Remote evaluation engine
    engine_url: str = ""
    engine_internal_key: str = ""
    engine_timeout_seconds: float = 8.0  # Cold starts take several seconds
    # Also run the local evaluators after an engine answer and log any disagreement
    engine_shadow_compare: bool = False

    # Pharmacokinetic table override (defaults to the bundled JSON)
    kinetics_table_path: str = ""

    # Dashboard simulation
    visualization_window_hours: int = 24
    timeline_interval_minutes: int = 15
    timeline_projection_hours: int = 4


@lru_cache
def get_settings() -> Settings:
    return Settings()
