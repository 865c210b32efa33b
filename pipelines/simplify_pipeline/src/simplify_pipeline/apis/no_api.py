from __future__ import annotations

from easylang_core.errors import EasyLanguageError
from easylang_core.quota import QuotaLimits
from simplify_pipeline.apis.client import ApiResult


class NoApi:
    """
    Manual mode: no provider is contacted. The copy is filled with the original text so an
    editor can simplify it by hand.
    """

    name = "no_api"
    title = "No API"

    def __init__(self) -> None:
        self.last_error: EasyLanguageError | None = None

    def is_configured(self) -> bool:
        return True

    def quota_limits(self) -> QuotaLimits:
        return QuotaLimits()

    def supports(self, source_language: str, target_language: str) -> bool:
        return True

    def call(
        self,
        text: str,
        source_language: str,
        target_language: str,
        is_html: bool,
        is_test: bool = False,
    ) -> ApiResult | None:
        self.last_error = None
        if not text:
            return None
        return ApiResult(simplified_text=text, job_id=None)

    def close(self) -> None:
        pass
