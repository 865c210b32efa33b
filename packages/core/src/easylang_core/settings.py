from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EASYLANG_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Production deployments point this at Postgres (postgresql+psycopg://...).
    database_url: str = "sqlite:///easy_language.db"
    blog_id: int = 1
    default_language: str = "de_DE"
    # Drop a fragment together with its simplifications once its last object link is removed.
    delete_unused_fragments: bool = False


settings = Settings()
