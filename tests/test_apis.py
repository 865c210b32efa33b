"""
Provider adapters against httpx.MockTransport: request shape, audit trail, quota, failures.
"""

import json
from unittest.mock import patch

import httpx
import pytest

from easylang_core.errors import NotConfiguredError, QuotaExceededError, TransportError
from easylang_core.quota import QuotaLimits
from simplify_pipeline.apis.capito import CapitoApi, capito_config
from simplify_pipeline.apis.chatgpt import ChatGptApi, chatgpt_config
from simplify_pipeline.apis.no_api import NoApi
from simplify_pipeline.apis.registry import ApiRegistry, build_registry
from simplify_pipeline.apis.summ_ai import SummAiApi, summ_ai_config
from simplify_pipeline.settings import Settings


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it answered."""

    def __init__(self, responder):
        self.requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return responder(request)

        super().__init__(handler)


def _json(status: int, body):
    return lambda request: httpx.Response(status, json=body)


def _summ_ai(settings, transport, call_log, quota):
    config = summ_ai_config(settings)
    quota.register_limits(config.name, config.limits)
    return SummAiApi(config, call_log=call_log, quota=quota, transport=transport)


@pytest.fixture
def summ_settings():
    return Settings(
        summ_ai_api_key="secret-key",
        summ_ai_api_url="https://summ.example/api/v1/translation/",
        summ_ai_contact_email="editor@example.org",
        site_url="https://example.org",
    )


class TestNotConfigured:
    def test_missing_token_makes_no_request(self, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "x"}))
        api = _summ_ai(Settings(summ_ai_api_key=None), transport, call_log, quota)

        assert api.call("Ein Text.", "de_DE", "de_LS", is_html=False) is None
        assert isinstance(api.last_error, NotConfiguredError)
        assert transport.requests == []
        entries = call_log.recent("summ_ai")
        assert len(entries) == 1
        assert entries[0].error_type == "NotConfiguredError"
        assert not api.is_configured()

    def test_empty_text_is_rejected(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "x"}))
        api = _summ_ai(summ_settings, transport, call_log, quota)
        assert api.call("", "de_DE", "de_LS", is_html=False) is None
        assert transport.requests == []


class TestSummAi:
    def test_free_mode_request(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "Leicht.\r\n", "jobid": "42"}))
        api = _summ_ai(summ_settings, transport, call_log, quota)

        result = api.call("<p>Schwer.</p>", "de_DE", "de_LS", is_html=True)

        assert result.simplified_text == "Leicht."
        assert result.job_id == 42
        request = transport.requests[0]
        assert request.headers["Authorization"] == "Token: secret-key"
        body = json.loads(request.content)
        assert body["input_text"] == "<p>Schwer.</p>"
        assert body["input_text_type"] == "html"
        assert body["output_language_level"] == "easy"
        assert body["user"] == "https://example.org|editor@example.org"
        assert body["separator"] == "interpunct"
        assert body["is_test"] is False

    def test_paid_mode_uses_bearer(self, summ_settings, call_log, quota):
        settings = summ_settings.model_copy(update={"summ_ai_free_mode": False})
        transport = RecordingTransport(_json(200, {"translated_text": "Einfach."}))
        api = _summ_ai(settings, transport, call_log, quota)
        api.call("Schwer.", "de_DE", "de_EL", is_html=False)
        request = transport.requests[0]
        assert request.headers["Authorization"] == "Bearer secret-key"
        assert json.loads(request.content)["output_language_level"] == "plain"
        assert quota.limits_for("summ_ai").unlimited

    def test_successful_call_counts_characters(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "Leicht."}))
        api = _summ_ai(summ_settings, transport, call_log, quota)
        api.call("Schwer.", "de_DE", "de_LS", is_html=False)
        assert quota.get_usage("summ_ai").spent == len("Schwer.")

    def test_no_count_response_is_not_counted(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "Leicht.", "no_count": True}))
        api = _summ_ai(summ_settings, transport, call_log, quota)
        api.call("Schwer.", "de_DE", "de_LS", is_html=False)
        assert quota.get_usage("summ_ai").spent == 0

    def test_disabled_free_requests_switch_the_api_off(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "Leicht.", "disabled": True}))
        api = _summ_ai(summ_settings, transport, call_log, quota)
        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is not None
        assert not api.is_configured()
        assert api.call("Noch einer.", "de_DE", "de_LS", is_html=False) is None
        assert len(transport.requests) == 1

    def test_quota_exhausted_short_circuits(self, summ_settings, call_log, quota):
        settings = summ_settings.model_copy(update={"summ_ai_quota": 10})
        transport = RecordingTransport(_json(200, {"translated_text": "Leicht."}))
        api = _summ_ai(settings, transport, call_log, quota)
        quota.record_usage("summ_ai", 8)

        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is None
        assert isinstance(api.last_error, QuotaExceededError)
        assert transport.requests == []
        assert call_log.recent("summ_ai")[0].error_type == "QuotaExceededError"

    def test_audit_entry_hides_the_token(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "Leicht."}))
        api = _summ_ai(summ_settings, transport, call_log, quota)
        api.call("Schwer.", "de_DE", "de_LS", is_html=False)

        entry = call_log.recent("summ_ai")[0]
        assert entry.http_status == 200
        assert entry.quota == len("Schwer.")
        assert entry.error_type is None
        assert entry.request["headers"]["Authorization"] == "Token: ***"
        assert "secret-key" not in json.dumps(entry.request)
        assert "Leicht." in entry.response


class TestFailures:
    def test_non_200_returns_none_and_is_audited(self, summ_settings, call_log, quota):
        transport = RecordingTransport(lambda request: httpx.Response(502, text="bad gateway"))
        api = _summ_ai(summ_settings, transport, call_log, quota)

        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is None
        assert isinstance(api.last_error, TransportError)
        assert api.last_error.http_status == 502
        entry = call_log.recent("summ_ai")[0]
        assert entry.http_status == 502
        assert entry.response == "bad gateway"
        assert entry.error_type == "TransportError"
        assert quota.get_usage("summ_ai").spent == 0

    def test_network_error_becomes_transport_error(self, summ_settings, call_log, quota):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = _summ_ai(summ_settings, RecordingTransport(refuse), call_log, quota)
        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is None
        assert isinstance(api.last_error, TransportError)

    def test_empty_simplification_is_a_failure(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": ""}))
        api = _summ_ai(summ_settings, transport, call_log, quota)
        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is None
        assert isinstance(api.last_error, TransportError)

    def test_last_error_is_cleared_by_next_success(self, summ_settings, call_log, quota):
        answers = iter([httpx.Response(500, text="oops"), httpx.Response(200, json={"translated_text": "Gut."})])
        api = _summ_ai(summ_settings, RecordingTransport(lambda request: next(answers)), call_log, quota)
        api.call("Schwer.", "de_DE", "de_LS", is_html=False)
        assert api.last_error is not None
        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False).simplified_text == "Gut."
        assert api.last_error is None

    def test_job_id_that_is_not_a_number_is_dropped(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "Leicht.", "jobid": "abc-1"}))
        api = _summ_ai(summ_settings, transport, call_log, quota)

        result = api.call("Schwer.", "de_DE", "de_LS", is_html=False)

        assert result.simplified_text == "Leicht."
        assert result.job_id is None
        assert len(call_log.recent("summ_ai")) == 1

    def test_text_that_is_not_a_string_is_a_failure(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": 123}))
        api = _summ_ai(summ_settings, transport, call_log, quota)

        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is None
        assert isinstance(api.last_error, TransportError)
        assert call_log.recent("summ_ai")[0].error_type == "TransportError"
        assert quota.get_usage("summ_ai").spent == 0

    def test_parser_crash_is_audited_as_transport_error(self, summ_settings, call_log, quota):
        transport = RecordingTransport(_json(200, {"translated_text": "Leicht."}))
        api = _summ_ai(summ_settings, transport, call_log, quota)

        with patch.object(SummAiApi, "parse_response", side_effect=KeyError("translated_text")):
            assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is None

        assert isinstance(api.last_error, TransportError)
        entry = call_log.recent("summ_ai")[0]
        assert entry.http_status == 200
        assert entry.error_type == "TransportError"


class TestCapito:
    def test_request_and_response(self, call_log, quota):
        settings = Settings(capito_api_key="cap-key", capito_api_url="https://capito.example/simplify")
        transport = RecordingTransport(_json(200, {"content": "Easy text."}))
        api = CapitoApi(capito_config(settings), call_log=call_log, quota=quota, transport=transport)

        result = api.call("Hard text.", "en_US", "en_a2", is_html=False)

        assert result.simplified_text == "Easy text."
        request = transport.requests[0]
        assert request.headers["Authorization"] == "Token cap-key"
        assert json.loads(request.content) == {"content": "Hard text.", "locale": "en", "proficiency": "a2"}
        assert api.supports("de_DE", "de_b1")
        assert not api.supports("de_DE", "de_LS")


class TestChatGpt:
    def test_prompt_is_prepended(self, call_log, quota):
        settings = Settings(chatgpt_api_key="sk-test", chatgpt_prompts={"de_LS": "Mach es leicht."})
        transport = RecordingTransport(
            _json(200, {"choices": [{"message": {"role": "assistant", "content": " Leicht. "}}]})
        )
        api = ChatGptApi(chatgpt_config(settings), call_log=call_log, quota=quota, transport=transport)

        result = api.call("Schwer.", "de_DE", "de_LS", is_html=False)

        assert result.simplified_text == "Leicht."
        request = transport.requests[0]
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-3.5-turbo"
        assert body["messages"] == [{"role": "user", "content": "Mach es leicht.\n\nSchwer."}]

    def test_missing_choices(self, call_log, quota):
        settings = Settings(chatgpt_api_key="sk-test")
        transport = RecordingTransport(_json(200, {"choices": []}))
        api = ChatGptApi(chatgpt_config(settings), call_log=call_log, quota=quota, transport=transport)
        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is None

    @pytest.mark.parametrize(
        "choices",
        [{"message": {"content": "x"}}, ["Leicht."], [{"message": "Leicht."}], [{"message": {"content": ["x"]}}]],
    )
    def test_odd_choices_are_audited_failures(self, call_log, quota, choices):
        settings = Settings(chatgpt_api_key="sk-test")
        transport = RecordingTransport(_json(200, {"choices": choices}))
        api = ChatGptApi(chatgpt_config(settings), call_log=call_log, quota=quota, transport=transport)

        assert api.call("Schwer.", "de_DE", "de_LS", is_html=False) is None
        assert isinstance(api.last_error, TransportError)
        assert len(call_log.recent(api.name)) == 1


class TestNoApi:
    def test_returns_the_original(self):
        api = NoApi()
        assert api.call("Text", "de_DE", "de_LS", is_html=False).simplified_text == "Text"
        assert api.call("", "de_DE", "de_LS", is_html=False) is None
        assert api.quota_limits().unlimited


class TestRegistry:
    def test_build_registry(self, call_log, quota):
        registry = build_registry(Settings(), call_log=call_log, quota=quota)
        assert registry.names() == ["summ_ai", "capito", "chatgpt", "no_api"]
        assert "capito" in registry
        assert quota.limits_for("summ_ai").max_requests_per_minute == 15
        registry.close()

    def test_unknown_api(self):
        with pytest.raises(NotConfiguredError):
            ApiRegistry().get("deepl")

    def test_limits_are_registered(self, call_log, quota):
        build_registry(Settings(summ_ai_quota=500), call_log=call_log, quota=quota)
        assert quota.limits_for("summ_ai") == QuotaLimits(
            character_limit=500, max_text_length=10000, max_requests_per_minute=15
        )
