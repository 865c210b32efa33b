"""
Error taxonomy shared by the store, the provider adapters and the orchestrator.

Provider errors never escape `call()`; they are converted to an empty result and kept as
`last_error` on the adapter. Storage and locking errors propagate to the caller.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class EasyLanguageError(RuntimeError):
    """Base class for all errors raised by this project."""


class NotConfiguredError(EasyLanguageError):
    """Provider credentials or endpoint URL are missing."""


class TransportError(EasyLanguageError):
    """Network failure, timeout or non-200 answer from a provider."""

    def __init__(self, message: str, *, http_status: int = 0, response_text: str = "") -> None:
        super().__init__(message)
        self.http_status = http_status
        self.response_text = response_text


class QuotaExceededError(EasyLanguageError):
    """The character usage of a provider would exceed its hard limit."""


class StorageError(EasyLanguageError):
    """Persistence layer failure (constraint violation, connection loss, unknown row)."""


class AlreadyLockedError(EasyLanguageError):
    """Another run holds the lock for the same object and target language."""


class ObjectNotFoundError(EasyLanguageError):
    """Unknown content object or run id."""


class ErrorCategory(str, Enum):
    """The only two error categories shown to users."""

    transport = "transport"
    internal = "internal"


def category_for(exc: BaseException | None) -> ErrorCategory:
    if isinstance(exc, TransportError):
        return ErrorCategory.transport
    return ErrorCategory.internal


class FragmentFailure(BaseModel):
    """Why one fragment could not be simplified during a run."""

    fragment_id: str
    error_type: str = Field(..., description="Class name of the provider error, or 'EmptyResponse'")
    message: str = ""

    def to_log_message(self) -> str:
        return f"[{self.error_type}] fragment:{self.fragment_id}: {self.message}"
