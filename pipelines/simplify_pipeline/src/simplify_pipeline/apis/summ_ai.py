from __future__ import annotations

import logging
from typing import Any

from easylang_core.errors import NotConfiguredError
from easylang_core.quota import QuotaLimits
from simplify_pipeline.apis.client import HttpSimplificationApi, ParsedResponse, ProviderConfig
from simplify_pipeline.settings import (
    SUMM_AI_MAX_REQUESTS_PER_MINUTE,
    SUMM_AI_MAX_TEXT_LENGTH,
    Settings,
)

logger = logging.getLogger(__name__)

SOURCE_LANGUAGES = {
    "de_DE": "de",
    "de_DE_formal": "de",
    "de_CH": "de",
    "de_CH_informal": "de",
    "de_AT": "de",
}
TARGET_LANGUAGES = {
    "de_EL": "plain",
    "de_LS": "easy",
}
DEFAULT_TARGET = "easy"


def summ_ai_config(settings: Settings) -> ProviderConfig:
    # Only the free plan is capped locally; paid plans are metered by SUMM AI itself.
    character_limit = settings.summ_ai_quota if settings.summ_ai_free_mode else None
    return ProviderConfig(
        name="summ_ai",
        title="SUMM AI",
        token=settings.summ_ai_api_key,
        url=settings.summ_ai_api_url,
        timeout_s=settings.api_timeout_s,
        limits=QuotaLimits(
            character_limit=character_limit,
            max_text_length=SUMM_AI_MAX_TEXT_LENGTH,
            max_requests_per_minute=SUMM_AI_MAX_REQUESTS_PER_MINUTE,
        ),
        source_languages=SOURCE_LANGUAGES,
        target_languages=TARGET_LANGUAGES,
        options={
            "free_mode": settings.summ_ai_free_mode,
            "html_mode": settings.summ_ai_html_mode,
            "user": f"{settings.site_url}|{settings.summ_ai_contact_email}",
            "separator": settings.summ_ai_separator,
            "new_lines": settings.summ_ai_new_lines,
            "embolden_negative": settings.summ_ai_embolden_negative,
            "test_mode": settings.summ_ai_test_mode,
        },
    )


def _job_id(value: Any) -> int | None:
    """Job number from the response; anything that is not a number counts as missing."""
    try:
        return abs(int(value))
    except (TypeError, ValueError):
        return None


class SummAiApi(HttpSimplificationApi):
    """
    SUMM AI translation endpoint.
    Free plan tokens are sent as `Token: <key>`, paid plan tokens as `Bearer <key>`.
    """

    def __init__(self, config: ProviderConfig, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.free_mode = bool(config.options.get("free_mode", True))
        self.free_requests_disabled = False

    def build_headers(self) -> dict[str, str]:
        prefix = "Token: " if self.free_mode else "Bearer "
        return {"Authorization": f"{prefix}{self.config.token}", "Content-Type": "application/json"}

    def build_body(
        self, text: str, source_language: str, target_language: str, is_html: bool, is_test: bool
    ) -> dict[str, Any]:
        options = self.config.options
        return {
            "input_text": text,
            "input_text_type": "html" if is_html and options.get("html_mode", True) else "plain_text",
            "user": options.get("user", ""),
            "is_test": bool(is_test or options.get("test_mode", False)),
            "separator": options.get("separator", "interpunct"),
            "output_language_level": self.config.target_languages.get(target_language, DEFAULT_TARGET),
            "is_new_lines": bool(options.get("new_lines", False)),
            "embolden_negative": bool(options.get("embolden_negative", False)),
        }

    def parse_response(self, data: dict[str, Any]) -> ParsedResponse:
        if data.get("disabled") and not self.free_requests_disabled:
            self.free_requests_disabled = True
            logger.warning("SUMM AI disabled free requests for this site")
        return ParsedResponse(
            text=data.get("translated_text") or "",
            job_id=_job_id(data.get("jobid")),
            no_count=bool(data.get("no_count")),
        )

    def is_configured(self) -> bool:
        if self.free_mode and self.free_requests_disabled:
            return False
        return super().is_configured()

    def _check_ready(self, text: str) -> None:
        if self.free_mode and self.free_requests_disabled:
            raise NotConfiguredError("SUMM AI free requests are disabled for this site")
        super()._check_ready(text)
