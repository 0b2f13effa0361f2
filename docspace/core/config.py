from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"

    # Database
    database_url: str
    database_echo: bool = False

    # Permission resolution
    permission_max_ancestor_depth: int = 25

    # Trash housekeeping
    trash_retention_days: int = 30
    trash_cleanup_batch_size: int = 10

    # Pydantic v2 style config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the .env is parsed once.
    """
    return Settings()
