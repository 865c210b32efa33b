from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from easylang_core.errors import category_for
from simplify_pipeline.run.orchestrator import RunState, SimplificationOrchestrator
from simplify_pipeline.run.payload import ResultPayloads


@dataclass(frozen=True)
class Progress:
    count: int
    max: int
    running: bool
    payload: dict[str, Any] | None = None

    def as_polling_response(self) -> list[Any]:
        """The ordered four-field shape polling clients expect: [count, max, running, payload]."""
        return [self.count, self.max, 1 if self.running else 0, self.payload or {}]


def progress_of(state: RunState) -> Progress:
    # The payload is only handed out once the run stopped.
    payload = None if state.running else state.results
    return Progress(count=state.count, max=state.max, running=state.running, payload=payload)


class ProgressReporter:
    def __init__(self, orchestrator: SimplificationOrchestrator, payloads: ResultPayloads | None = None) -> None:
        self._orchestrator = orchestrator
        self._payloads = payloads or orchestrator.payloads

    def get(self, run_id: uuid.UUID) -> Progress:
        return progress_of(self._orchestrator.get(run_id))

    def polling_response(self, run_id: uuid.UUID) -> list[Any]:
        return self.get(run_id).as_polling_response()

    def error_response(self, exc: BaseException) -> list[Any]:
        payload = self._payloads.error(category_for(exc), detail=str(exc))
        return Progress(count=1, max=1, running=False, payload=payload).as_polling_response()
