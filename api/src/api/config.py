"""HTTP layer settings (API_ environment variables)."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings of the polling API; engine and provider settings live with the pipeline."""

    cors_origins: str = "http://localhost:3000"
    debug: bool = False
    # Target language used when a polling request does not name one.
    default_target_language: str = "de_LS"
    # Upper bound for `max_items_per_tick` so one polling request stays within proxy timeouts.
    tick_size_cap: int = 10

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def tick_size(self, requested: int | None) -> int | None:
        if requested is None:
            return None
        return max(1, min(requested, self.tick_size_cap))

    model_config = {"env_prefix": "API_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
