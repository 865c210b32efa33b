from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from easylang_core.audit import ApiCall, ApiCallLog
from easylang_core.errors import (
    EasyLanguageError,
    NotConfiguredError,
    QuotaExceededError,
    TransportError,
)
from easylang_core.quota import QuotaLimits, QuotaTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """Everything an adapter needs, resolved once from settings."""

    name: str
    title: str
    token: str | None = None
    url: str | None = None
    timeout_s: float = 60.0
    limits: QuotaLimits = field(default_factory=QuotaLimits)
    # Plugin language code -> value the provider expects.
    source_languages: Mapping[str, str] = field(default_factory=dict)
    target_languages: Mapping[str, str] = field(default_factory=dict)
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiResult:
    simplified_text: str
    job_id: int | None = None


@dataclass(frozen=True)
class ParsedResponse:
    text: str
    job_id: int | None = None
    # Provider asked not to count this call against the quota.
    no_count: bool = False


class SimplificationApi(Protocol):
    name: str
    title: str
    last_error: EasyLanguageError | None

    def is_configured(self) -> bool: ...

    def quota_limits(self) -> QuotaLimits: ...

    def supports(self, source_language: str, target_language: str) -> bool: ...

    def call(
        self,
        text: str,
        source_language: str,
        target_language: str,
        is_html: bool,
        is_test: bool = False,
    ) -> ApiResult | None: ...


def normalize_text(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


class HttpSimplificationApi:
    """
    Shared request/response handling for HTTP providers.

    `call()` never raises provider errors: it returns None and keeps the error in `last_error`.
    Every call, including short-circuits, is appended to the API call log.
    """

    method = "POST"

    def __init__(
        self,
        config: ProviderConfig,
        *,
        call_log: ApiCallLog,
        quota: QuotaTracker,
        blog_id: int = 1,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.name = config.name
        self.title = config.title
        self.last_error: EasyLanguageError | None = None
        self._call_log = call_log
        self._quota = quota
        self._blog_id = blog_id
        self._transport = transport
        self._client: httpx.Client | None = None

    def __enter__(self) -> "HttpSimplificationApi":
        self._ensure_client()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            timeout = httpx.Timeout(
                self.config.timeout_s,
                connect=self.config.timeout_s,
                read=self.config.timeout_s,
                write=self.config.timeout_s,
            )
            self._client = httpx.Client(timeout=timeout, transport=self._transport)
        return self._client

    # Provider hooks

    def build_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.token}", "Content-Type": "application/json"}

    def build_body(
        self, text: str, source_language: str, target_language: str, is_html: bool, is_test: bool
    ) -> dict[str, Any]:
        raise NotImplementedError

    def parse_response(self, data: dict[str, Any]) -> ParsedResponse:
        raise NotImplementedError

    # Contract

    def is_configured(self) -> bool:
        return bool(self.config.token) and bool(self.config.url)

    def quota_limits(self) -> QuotaLimits:
        return self.config.limits

    def supports(self, source_language: str, target_language: str) -> bool:
        return source_language in self.config.source_languages and target_language in self.config.target_languages

    def call(
        self,
        text: str,
        source_language: str,
        target_language: str,
        is_html: bool,
        is_test: bool = False,
    ) -> ApiResult | None:
        self.last_error = None
        request: dict[str, Any] = {"method": self.method, "url": self.config.url or ""}
        started = time.time()
        http_status = 0
        response_text = ""
        try:
            self._check_ready(text)
            headers = self.build_headers()
            body = self.build_body(text, source_language, target_language, is_html, is_test)
            request.update(headers=headers, body=body)
            http_status, response_text, parsed = self._send(headers, body)
        except EasyLanguageError as exc:
            self.last_error = exc
            if isinstance(exc, TransportError):
                http_status = exc.http_status or http_status
                response_text = exc.response_text
                logger.warning("%s call failed: %s", self.title, exc)
            else:
                logger.error("%s call skipped: %s", self.title, exc)
            self._audit(request, response_text, http_status, time.time() - started, len(text), type(exc).__name__)
            return None

        duration = time.time() - started
        self._audit(request, response_text, http_status, duration, len(text), None)
        if not parsed.no_count:
            self._quota.record_usage(self.name, len(text))
        logger.debug("%s simplified %d chars in %.2fs", self.title, len(text), duration)
        return ApiResult(simplified_text=normalize_text(parsed.text), job_id=parsed.job_id)

    def _check_ready(self, text: str) -> None:
        if not self.config.url:
            raise NotConfiguredError(f"No API URL configured for {self.title}")
        if not self.config.token:
            raise NotConfiguredError(f"No API key configured for {self.title}")
        if self.method == "POST" and not text:
            raise NotConfiguredError(f"No text given for {self.title}")
        limit = self.quota_limits().character_limit
        if limit is not None:
            spent = self._quota.get_usage(self.name).spent
            if spent + len(text) > limit:
                raise QuotaExceededError(
                    f"{self.title} quota would be exceeded ({spent} + {len(text)} > {limit} characters)"
                )

    def _send(self, headers: dict[str, str], body: dict[str, Any]) -> tuple[int, str, ParsedResponse]:
        client = self._ensure_client()
        try:
            resp = client.request(self.method, self.config.url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__} from {self.config.url}: {exc}") from exc

        if resp.status_code != 200:
            raise TransportError(
                f"{self.title} error {resp.status_code} from {self.config.url}: {resp.text[:500]}",
                http_status=resp.status_code,
                response_text=resp.text,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportError(
                f"{self.title} returned invalid JSON", http_status=resp.status_code, response_text=resp.text
            ) from exc
        if not isinstance(data, dict):
            raise TransportError(
                f"{self.title} returned an unexpected body", http_status=resp.status_code, response_text=resp.text
            )
        try:
            parsed = self.parse_response(data)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
            raise TransportError(
                f"{self.title} returned a malformed body: {exc}", http_status=resp.status_code, response_text=resp.text
            ) from exc
        if not isinstance(parsed.text, str):
            raise TransportError(
                f"{self.title} returned a non-text result", http_status=resp.status_code, response_text=resp.text
            )
        if not parsed.text:
            raise TransportError(
                f"{self.title} returned no simplified text", http_status=resp.status_code, response_text=resp.text
            )
        return resp.status_code, resp.text, parsed

    def _audit(
        self,
        request: dict[str, Any],
        response: str,
        http_status: int,
        duration_s: float,
        quota: int,
        error_type: str | None,
    ) -> None:
        self._call_log.append(
            ApiCall(
                api_name=self.name,
                request=request,
                response=response,
                http_status=http_status,
                duration_s=duration_s,
                quota=quota,
                blog_id=self._blog_id,
                error_type=error_type,
            )
        )
