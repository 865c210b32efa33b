from __future__ import annotations

from collections.abc import Iterator

import httpx

from easylang_core.audit import ApiCallLog
from easylang_core.errors import NotConfiguredError
from easylang_core.quota import QuotaTracker
from simplify_pipeline.apis.capito import CapitoApi, capito_config
from simplify_pipeline.apis.chatgpt import ChatGptApi, chatgpt_config
from simplify_pipeline.apis.client import SimplificationApi
from simplify_pipeline.apis.no_api import NoApi
from simplify_pipeline.apis.summ_ai import SummAiApi, summ_ai_config
from simplify_pipeline.settings import Settings


class ApiRegistry:
    """Adapters keyed by name, kept in registration order."""

    def __init__(self) -> None:
        self._apis: dict[str, SimplificationApi] = {}

    def register(self, api: SimplificationApi) -> None:
        self._apis[api.name] = api

    def get(self, name: str) -> SimplificationApi:
        try:
            return self._apis[name]
        except KeyError:
            raise NotConfiguredError(f"Unknown API: {name}") from None

    def names(self) -> list[str]:
        return list(self._apis)

    def __contains__(self, name: object) -> bool:
        return name in self._apis

    def __iter__(self) -> Iterator[SimplificationApi]:
        return iter(self._apis.values())

    def close(self) -> None:
        for api in self._apis.values():
            close = getattr(api, "close", None)
            if close is not None:
                close()


def build_registry(
    settings: Settings,
    *,
    call_log: ApiCallLog,
    quota: QuotaTracker,
    blog_id: int = 1,
    transport: httpx.BaseTransport | None = None,
) -> ApiRegistry:
    registry = ApiRegistry()
    for api_cls, config in (
        (SummAiApi, summ_ai_config(settings)),
        (CapitoApi, capito_config(settings)),
        (ChatGptApi, chatgpt_config(settings)),
    ):
        registry.register(api_cls(config, call_log=call_log, quota=quota, blog_id=blog_id, transport=transport))
    registry.register(NoApi())
    for api in registry:
        quota.register_limits(api.name, api.quota_limits())
    return registry
