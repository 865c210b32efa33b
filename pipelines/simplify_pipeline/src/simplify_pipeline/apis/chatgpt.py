from __future__ import annotations

from typing import Any

from simplify_pipeline.apis.client import HttpSimplificationApi, ParsedResponse, ProviderConfig
from simplify_pipeline.settings import Settings

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


def chatgpt_config(settings: Settings) -> ProviderConfig:
    return ProviderConfig(
        name="chatgpt",
        title="ChatGpt",
        token=settings.chatgpt_api_key,
        url=settings.chatgpt_api_url,
        timeout_s=settings.api_timeout_s,
        source_languages=SOURCE_LANGUAGES,
        target_languages=TARGET_LANGUAGES,
        options={"model": settings.chatgpt_model, "prompts": dict(settings.chatgpt_prompts)},
    )


class ChatGptApi(HttpSimplificationApi):
    """OpenAI chat completions; the target language selects the instruction put before the text."""

    def build_body(
        self, text: str, source_language: str, target_language: str, is_html: bool, is_test: bool
    ) -> dict[str, Any]:
        prompts = self.config.options.get("prompts") or {}
        prefix = prompts.get(target_language, "")
        content = f"{prefix}\n\n{text}" if prefix else text
        return {
            "model": self.config.options.get("model", "gpt-3.5-turbo"),
            "messages": [{"role": "user", "content": content}],
        }

    def parse_response(self, data: dict[str, Any]) -> ParsedResponse:
        choices = data.get("choices")
        choice0 = choices[0] if isinstance(choices, list) and choices else {}
        message = choice0.get("message") if isinstance(choice0, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        return ParsedResponse(text=content or "", job_id=0)
