"""
Polling responses and result payloads.
"""

import uuid
from types import SimpleNamespace

from easylang_core.db.enums import RunKind, RunStatus
from easylang_core.errors import NotConfiguredError, TransportError
from simplify_pipeline.run.orchestrator import RunState
from simplify_pipeline.run.payload import ResultPayloads
from simplify_pipeline.run.progress import Progress, progress_of


def _state(status, count=1, max_=3, results=None):
    return RunState(
        run_id=uuid.uuid4(),
        kind=RunKind.simplification,
        status=status,
        count=count,
        max=max_,
        results=results,
    )


class TestProgress:
    def test_running_hides_the_payload(self):
        progress = progress_of(_state(RunStatus.locked_running, results={"kind": "success"}))
        assert progress.as_polling_response() == [1, 3, 1, {}]

    def test_finished_run_carries_the_payload(self):
        payload = {"kind": "success", "title": "Simplification finished", "message": "", "links": []}
        progress = progress_of(_state(RunStatus.done, count=3, results=payload))
        assert progress.as_polling_response() == [3, 3, 0, payload]

    def test_shape(self):
        assert Progress(count=0, max=0, running=False).as_polling_response() == [0, 0, 0, {}]


class TestErrorResponse:
    def test_transport_error(self, services):
        response = services.progress.error_response(TransportError("read timeout"))
        count, max_, running, payload = response
        assert (count, max_, running) == (1, 1, 0)
        assert payload["category"] == "transport"
        assert payload["kind"] == "error"
        assert payload["links"] == []
        assert payload["detail"] == "read timeout"

    def test_everything_else_is_internal(self, services):
        payload = services.progress.error_response(NotConfiguredError("no key"))[3]
        assert payload["category"] == "internal"
        assert payload["title"] == "Unknown error"

    def test_polling_a_live_run(self, services, gutenberg_post):
        state = services.orchestrator.start_run(gutenberg_post, "de_LS", max_items_per_tick=1)
        assert services.progress.polling_response(state.run_id) == [0, 3, 1, {}]


class TestPayloads:
    copy = SimpleNamespace(object_id=7, object_type="post", blog_id=1)

    def test_links(self):
        payloads = ResultPayloads(site_url="https://example.org/")
        payload = payloads.simplification(self.copy, status=RunStatus.done, succeeded=2, total=2, failed=0)
        assert payload["links"] == [
            {"label": "View", "url": "https://example.org/?p=7"},
            {"label": "Edit", "url": "https://example.org/wp-admin/post.php?post=7&action=edit"},
        ]
        assert payload["message"] == "2 of 2 texts have been simplified."

    def test_partial_names_the_failures(self):
        payload = ResultPayloads().simplification(
            self.copy, status=RunStatus.partial, succeeded=3, total=5, failed=2
        )
        assert payload["kind"] == "partial"
        assert "2 could not be simplified" in payload["message"]

    def test_quota_hint(self):
        payload = ResultPayloads().quota_hint("above_entry_limit", entries=40, chars=1200)
        assert payload["kind"] == "hint"
        assert payload["status"] == "above_entry_limit"
        assert "40 texts" in payload["message"]

    def test_quota_hint_outside_automatic_mode(self):
        payload = ResultPayloads().quota_hint("above_entry_limit", entries=40, chars=1200, automatic=False)
        assert "has not been queued" in payload["message"]
        assert "queued for automatic" not in payload["message"]
