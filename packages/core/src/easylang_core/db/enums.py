from __future__ import annotations

import enum


class FragmentState(str, enum.Enum):
    to_simplify = "to_simplify"
    processing = "processing"
    in_use = "in_use"
    ignore = "ignore"


class ObjectStatus(str, enum.Enum):
    publish = "publish"
    draft = "draft"
    trash = "trash"


class RunKind(str, enum.Enum):
    simplification = "simplification"
    deletion = "deletion"


class RunStatus(str, enum.Enum):
    not_started = "not_started"
    locked_running = "locked_running"
    partial = "partial"
    done = "done"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {RunStatus.partial, RunStatus.done, RunStatus.failed, RunStatus.cancelled}


class QuotaStatus(str, enum.Enum):
    ok = "ok"
    above_limit = "above_limit"
    exceeded = "exceeded"
    above_text_limit = "above_text_limit"
    above_entry_limit = "above_entry_limit"
