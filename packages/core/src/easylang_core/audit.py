from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from easylang_core.db.models import ApiLogEntry
from easylang_core.db.transaction import session_scope

logger = logging.getLogger(__name__)

REDACTED = "***"
_SECRET_HEADERS = {"authorization", "token", "x-api-key"}


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Replace credentials with a marker, keeping the auth scheme ("Bearer", "Token")."""
    cleaned: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in _SECRET_HEADERS:
            scheme, _, secret = str(value).partition(" ")
            cleaned[key] = f"{scheme} {REDACTED}" if secret else REDACTED
        else:
            cleaned[key] = value
    return cleaned


@dataclass(frozen=True)
class ApiCall:
    api_name: str
    request: dict[str, Any]
    response: str = ""
    http_status: int = 0
    duration_s: float = 0.0
    quota: int = 0
    blog_id: int = 1
    error_type: str | None = None


class ApiCallLog:
    """Persistent audit trail of provider calls."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def append(self, call: ApiCall) -> ApiLogEntry:
        request = dict(call.request)
        if isinstance(request.get("headers"), Mapping):
            request["headers"] = redact_headers(request["headers"])
        entry = ApiLogEntry(
            log_id=uuid.uuid4(),
            api_name=call.api_name,
            http_status=call.http_status,
            request=request,
            response=call.response,
            duration_s=call.duration_s,
            quota=call.quota,
            blog_id=call.blog_id,
            error_type=call.error_type,
        )
        with session_scope(self._session_factory) as session:
            session.add(entry)
        return entry

    def recent(self, api_name: str | None = None, limit: int = 50) -> list[ApiLogEntry]:
        stmt = select(ApiLogEntry).order_by(ApiLogEntry.created_at.desc()).limit(limit)
        if api_name is not None:
            stmt = stmt.where(ApiLogEntry.api_name == api_name)
        with session_scope(self._session_factory) as session:
            return list(session.scalars(stmt).all())
