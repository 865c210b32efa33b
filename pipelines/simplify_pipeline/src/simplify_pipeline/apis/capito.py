from __future__ import annotations

from typing import Any

from simplify_pipeline.apis.client import HttpSimplificationApi, ParsedResponse, ProviderConfig
from simplify_pipeline.settings import Settings

SOURCE_LANGUAGES = {
    "de_DE": "de",
    "de_CH": "de",
    "de_AT": "de",
    "en_UK": "en",
    "en_US": "en",
}
TARGET_LANGUAGES = {
    **{f"de_{level}": level for level in ("a1", "a2", "b1", "b2", "c1", "c2")},
    **{f"en_{level}": level for level in ("a1", "a2", "b1", "b2", "c1", "c2")},
}


def capito_config(settings: Settings) -> ProviderConfig:
    return ProviderConfig(
        name="capito",
        title="capito",
        token=settings.capito_api_key,
        url=settings.capito_api_url,
        timeout_s=settings.api_timeout_s,
        source_languages=SOURCE_LANGUAGES,
        target_languages=TARGET_LANGUAGES,
    )


class CapitoApi(HttpSimplificationApi):
    def build_headers(self) -> dict[str, str]:
        return {"Authorization": f"Token {self.config.token}", "Content-Type": "application/json"}

    def build_body(
        self, text: str, source_language: str, target_language: str, is_html: bool, is_test: bool
    ) -> dict[str, Any]:
        return {
            "content": text,
            "locale": self.config.source_languages.get(source_language, "de"),
            "proficiency": self.config.target_languages.get(target_language, "b1"),
        }

    def parse_response(self, data: dict[str, Any]) -> ParsedResponse:
        return ParsedResponse(text=data.get("content") or "")
