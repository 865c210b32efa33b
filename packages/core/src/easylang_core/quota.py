from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from easylang_core.db.base import utcnow
from easylang_core.db.enums import QuotaStatus
from easylang_core.db.models import ApiUsage
from easylang_core.db.transaction import session_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaLimits:
    """Provider ceilings; `None` means the provider does not enforce that limit."""

    character_limit: int | None = None
    max_text_length: int | None = None
    max_requests_per_minute: int | None = None

    @property
    def unlimited(self) -> bool:
        return self.character_limit is None


@dataclass(frozen=True)
class Usage:
    spent: int
    limit: int | None

    @property
    def rest(self) -> int | None:
        if self.limit is None:
            return None
        return max(self.limit - self.spent, 0)

    @property
    def percent(self) -> float:
        if not self.limit:
            return 0.0
        return self.spent / self.limit


@dataclass(frozen=True)
class QuotaCheck:
    status: QuotaStatus
    chars_count: int
    quota_percent: float
    quota_rest: int | None

    @property
    def ok(self) -> bool:
        return self.status == QuotaStatus.ok


class QuotaTracker:
    """
    Per-API cumulative character counter.
    Normal operation only ever increases it; `reset_usage` is the administrative exception.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        limits: Mapping[str, QuotaLimits] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._limits: dict[str, QuotaLimits] = dict(limits or {})

    def register_limits(self, api_name: str, limits: QuotaLimits) -> None:
        self._limits[api_name] = limits

    def limits_for(self, api_name: str) -> QuotaLimits:
        return self._limits.get(api_name, QuotaLimits())

    def record_usage(self, api_name: str, character_count: int) -> int:
        if character_count < 0:
            raise ValueError("character_count must not be negative")
        with session_scope(self._session_factory) as session:
            row = session.get(ApiUsage, api_name)
            if row is None:
                row = ApiUsage(api_name=api_name, characters_spent=0)
                session.add(row)
            row.characters_spent = (row.characters_spent or 0) + character_count
            session.flush()
            return row.characters_spent

    def get_usage(self, api_name: str) -> Usage:
        with session_scope(self._session_factory) as session:
            row = session.get(ApiUsage, api_name)
            spent = row.characters_spent if row is not None else 0
        return Usage(spent=spent, limit=self.limits_for(api_name).character_limit)

    def reset_usage(self, api_name: str) -> None:
        with session_scope(self._session_factory) as session:
            row = session.get(ApiUsage, api_name)
            if row is None:
                row = ApiUsage(api_name=api_name)
                session.add(row)
            row.characters_spent = 0
            row.reset_at = utcnow()
        logger.info("reset character usage of %s", api_name)

    def check(
        self,
        api_name: str,
        character_count: int,
        *,
        entry_count: int = 1,
        longest_text: int | None = None,
    ) -> QuotaCheck:
        """
        Later rules win: quota rules first, then "unlimited" clears them, then the per-text
        limit, then the entry limit.
        """
        limits = self.limits_for(api_name)
        usage = self.get_usage(api_name)
        rest = usage.rest

        status = QuotaStatus.ok
        if rest is not None and rest < character_count:
            status = QuotaStatus.above_limit
        if rest is not None and rest <= 0:
            status = QuotaStatus.exceeded
        if limits.unlimited:
            status = QuotaStatus.ok
        longest = character_count if longest_text is None else longest_text
        if limits.max_text_length is not None and longest > limits.max_text_length:
            status = QuotaStatus.above_text_limit
        if limits.max_requests_per_minute is not None and entry_count > limits.max_requests_per_minute:
            status = QuotaStatus.above_entry_limit

        return QuotaCheck(
            status=status,
            chars_count=character_count,
            quota_percent=usage.percent,
            quota_rest=rest,
        )

    def check_object(self, api_name: str, texts: Sequence[str]) -> QuotaCheck:
        """Check all pending texts of one object at once."""
        lengths = [len(text) for text in texts]
        return self.check(
            api_name,
            sum(lengths),
            entry_count=len(lengths),
            longest_text=max(lengths, default=0),
        )
