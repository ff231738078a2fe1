"""Runtime configuration loaded from the environment."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Ad Moderation Service"
    database_url: str = "sqlite:///./admod.db"
    jwt_secret: str = "change-me-in-production-use-at-least-32-bytes"
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 60
    log_level: str = "INFO"
    seed_permissions: bool = True

    model_config = SettingsConfigDict(env_prefix="ADMOD_", extra="ignore")

    @property
    def sqlalchemy_database_url(self) -> str:
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql://", 1)
        return self.database_url


@lru_cache
def get_settings() -> Settings:
    return Settings()
