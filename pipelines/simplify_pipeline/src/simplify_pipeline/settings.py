from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SUMM_AI_FREE_QUOTA = 18000
SUMM_AI_MAX_TEXT_LENGTH = 10000
SUMM_AI_MAX_REQUESTS_PER_MINUTE = 15


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EASYLANG_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    active_api: str = "no_api"
    api_timeout_s: float = 60.0
    # Fragments processed per tick; keep each polling request short.
    text_limit_per_process: int = 1
    site_url: str = "http://localhost"
    # Used to build the view/edit links of the final result payload.
    view_url_template: str = "/?p={object_id}"
    edit_url_template: str = "/wp-admin/post.php?post={object_id}&action=edit"

    summ_ai_api_key: str | None = None
    summ_ai_api_url: str = "https://backend.summ-ai.com/api/v1/translation/"
    summ_ai_free_mode: bool = True
    summ_ai_html_mode: bool = True
    summ_ai_contact_email: str = ""
    summ_ai_separator: str = "interpunct"
    summ_ai_new_lines: bool = False
    summ_ai_embolden_negative: bool = False
    summ_ai_test_mode: bool = False
    summ_ai_quota: int = SUMM_AI_FREE_QUOTA

    capito_api_key: str | None = None
    capito_api_url: str = "https://api.capito.ai/api/v1/simplify"

    chatgpt_api_key: str | None = None
    chatgpt_api_url: str = "https://api.openai.com/v1/chat/completions"
    chatgpt_model: str = "gpt-3.5-turbo"
    chatgpt_prompts: dict[str, str] = Field(
        default_factory=lambda: {
            "de_EL": "Vereinfache bitte den folgenden deutschen Text in Einfache Sprache.",
            "de_LS": (
                "Vereinfache bitte den folgenden deutschen Text in Leichte Sprache. "
                "Verwende dabei pro Absatz eine Zeile."
            ),
        }
    )


settings = Settings()
