from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from easylang_core.db.enums import RunStatus
from easylang_core.db.models import ContentObject
from easylang_core.errors import ErrorCategory

KIND_SUCCESS = "success"
KIND_PARTIAL = "partial"
KIND_ERROR = "error"
KIND_HINT = "hint"


@dataclass(frozen=True)
class ResultPayloads:
    """
    Final UI payloads. Plain data only: a title, a message and labelled links.
    """

    site_url: str = ""
    view_url_template: str = "/?p={object_id}"
    edit_url_template: str = "/wp-admin/post.php?post={object_id}&action=edit"

    def _links(self, obj: ContentObject) -> list[dict[str, str]]:
        fields = {"object_id": obj.object_id, "object_type": obj.object_type, "blog_id": obj.blog_id}
        base = self.site_url.rstrip("/")
        return [
            {"label": "View", "url": base + self.view_url_template.format(**fields)},
            {"label": "Edit", "url": base + self.edit_url_template.format(**fields)},
        ]

    def simplification(
        self,
        copy: ContentObject,
        *,
        status: RunStatus,
        succeeded: int,
        total: int,
        failed: int,
    ) -> dict[str, Any]:
        if status == RunStatus.done:
            kind = KIND_SUCCESS
            title = "Simplification finished"
            message = f"{succeeded} of {total} texts have been simplified."
        elif status == RunStatus.partial:
            kind = KIND_PARTIAL
            title = "Simplification partially finished"
            message = (
                f"{succeeded} of {total} texts have been simplified, {failed} could not be simplified. "
                "Start the simplification again or ignore the failed texts."
            )
        else:
            kind = KIND_ERROR
            title = "Simplification failed"
            message = "None of the texts could be simplified. Check the API log for details."
        return {"kind": kind, "title": title, "message": message, "links": self._links(copy)}

    def deletion(self, original: ContentObject, *, deleted: int) -> dict[str, Any]:
        return {
            "kind": KIND_SUCCESS,
            "title": "Simplifications deleted",
            "message": f"{deleted} simplified copies have been deleted.",
            "links": self._links(original),
        }

    def quota_hint(self, status: str, *, entries: int, chars: int, automatic: bool = True) -> dict[str, Any]:
        queued = (
            "It has been queued for automatic simplification."
            if automatic
            else "Automatic simplification is disabled for it, so it has not been queued."
        )
        messages = {
            "above_entry_limit": f"The object contains {entries} texts, more than can be simplified right now. {queued}",
            "above_text_limit": "At least one text is longer than the API accepts in one request.",
            "exceeded": "The quota of the API is used up.",
            "above_limit": f"The {chars} characters to simplify exceed the remaining quota.",
        }
        return {
            "kind": KIND_HINT,
            "title": "Simplification not started",
            "message": messages.get(status, status),
            "status": status,
            "links": [],
        }

    def error(self, category: ErrorCategory, detail: str = "") -> dict[str, Any]:
        if category == ErrorCategory.transport:
            title = "HTTP transport error"
            message = (
                "The request did not complete, probably because of a timeout. "
                "Ask your hosting provider about the request limits."
            )
        else:
            title = "Unknown error"
            message = "An internal error occurred. Check the server logs."
        payload: dict[str, Any] = {
            "kind": KIND_ERROR,
            "category": category.value,
            "title": title,
            "message": message,
            "links": [],
        }
        if detail:
            payload["detail"] = detail
        return payload
