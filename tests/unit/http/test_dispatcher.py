"""Unit tests for the retrying HTTP dispatcher."""

import json

import httpx
import pytest
import respx
from httpx import ConnectError, Response
from structlog.testing import capture_logs

from supadynamic.core.config import DispatchConfig, Settings
from supadynamic.core.exceptions import (
    InvalidArgument,
    RetryExhausted,
    ServerErrorResponse,
    TransportError,
)
from supadynamic.http.dispatcher import (
    REDACTED,
    RequestSpec,
    RetryingDispatcher,
    dispatch,
    redact_headers,
)
from supadynamic.http.requester import AttemptOutcome, ResponseEnvelope
from supadynamic.http.retry import DelaySchedule

URL = "https://api.example.com/functions/v1/hello"


class ScriptedRequester:
    """Requester that replays a fixed list of outcomes."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def attempt(self, url, method, headers, params, payload, timeout_ms):
        self.calls.append(dict(headers))
        return self.outcomes.pop(0)


@pytest.mark.unit
class TestRetryLoop:
    """Attempt counting, delays and success classification."""

    @respx.mock
    def test_zero_retries_makes_one_call_without_sleep(self, dispatcher, sleeps):
        route = respx.post(URL).mock(return_value=Response(200, json={"ok": True}))

        envelope = dispatcher.dispatch(RequestSpec(url=URL, max_retries=0))

        assert route.call_count == 1
        assert sleeps == []
        assert envelope.to_dict() == {"status_code": 200, "response": {"ok": True}}

    @respx.mock
    def test_success_on_first_attempt_regardless_of_max_retries(self, dispatcher, sleeps):
        route = respx.post(URL).mock(return_value=Response(200, json={"ok": True}))

        envelope = dispatcher.dispatch(RequestSpec(url=URL, max_retries=5))

        assert route.call_count == 1
        assert sleeps == []
        assert envelope.status_code == 200

    @respx.mock
    def test_server_errors_exhaust_retries_with_scheduled_delays(self, dispatcher, sleeps):
        route = respx.post(URL).mock(return_value=Response(503, json={"error": "busy"}))

        with pytest.raises(RetryExhausted) as exc_info:
            dispatcher.dispatch(RequestSpec(url=URL, max_retries=3))

        assert route.call_count == 4
        assert sleeps == [0.25, 0.5, 1.0]
        error = exc_info.value
        assert error.attempts == 4
        assert error.max_retries == 3
        assert isinstance(error.last_error, ServerErrorResponse)
        assert error.last_error.envelope.status_code == 503
        assert "3 retries" in str(error)
        assert "503" in str(error)

    @respx.mock
    def test_max_schedule_uses_every_delay(self, dispatcher, sleeps):
        respx.post(URL).mock(return_value=Response(500))

        with pytest.raises(RetryExhausted):
            dispatcher.dispatch(RequestSpec(url=URL, max_retries=5))

        assert sleeps == [0.25, 0.5, 1.0, 2.5, 5.0]

    @respx.mock
    def test_client_error_is_not_retried(self, dispatcher, sleeps):
        route = respx.post(URL).mock(return_value=Response(404, json={"error": "missing"}))

        envelope = dispatcher.dispatch(RequestSpec(url=URL, max_retries=3))

        assert route.call_count == 1
        assert sleeps == []
        assert envelope.to_dict() == {"status_code": 404, "response": {"error": "missing"}}

    @respx.mock
    def test_recovers_after_server_error(self, dispatcher, sleeps):
        route = respx.post(URL).mock(
            side_effect=[Response(502), Response(200, json={"ok": True})]
        )

        envelope = dispatcher.dispatch(RequestSpec(url=URL, max_retries=2))

        assert route.call_count == 2
        assert sleeps == [0.25]
        assert envelope.response == {"ok": True}

    @respx.mock
    def test_transport_error_is_retried(self, dispatcher, sleeps):
        route = respx.post(URL).mock(
            side_effect=[ConnectError("Connection refused"), Response(200, json={"ok": True})]
        )

        envelope = dispatcher.dispatch(RequestSpec(url=URL, max_retries=1))

        assert route.call_count == 2
        assert sleeps == [0.25]
        assert envelope.status_code == 200

    @respx.mock
    def test_transport_error_exhaustion_carries_last_error(self, dispatcher):
        respx.post(URL).mock(side_effect=ConnectError("Connection refused"))

        with pytest.raises(RetryExhausted) as exc_info:
            dispatcher.dispatch(RequestSpec(url=URL, max_retries=1))

        last_error = exc_info.value.last_error
        assert isinstance(last_error, TransportError)
        assert not isinstance(last_error, ServerErrorResponse)
        assert isinstance(last_error.cause, ConnectError)
        assert "Connection refused" in str(exc_info.value)

    def test_unreadable_status_code_is_treated_as_transport_error(self, sleeps):
        requester = ScriptedRequester([
            AttemptOutcome.success(ResponseEnvelope(status_code="oops", response={})),
            AttemptOutcome.success(ResponseEnvelope(status_code=201, response={"id": 7})),
        ])
        dispatcher = RetryingDispatcher(requester=requester, sleep=sleeps.append)

        envelope = dispatcher.dispatch(RequestSpec(url=URL, max_retries=1))

        assert len(requester.calls) == 2
        assert envelope.response == {"id": 7}

    def test_unreadable_status_code_on_last_attempt_exhausts(self, sleeps):
        requester = ScriptedRequester([
            AttemptOutcome.success(ResponseEnvelope(status_code=None, response={})),
        ])
        dispatcher = RetryingDispatcher(requester=requester, sleep=sleeps.append)

        with pytest.raises(RetryExhausted) as exc_info:
            dispatcher.dispatch(RequestSpec(url=URL))

        assert "unreadable status code" in exc_info.value.last_error.reason

    def test_numeric_string_status_code_is_accepted(self, sleeps):
        requester = ScriptedRequester([
            AttemptOutcome.success(ResponseEnvelope(status_code="200", response={})),
        ])
        dispatcher = RetryingDispatcher(requester=requester, sleep=sleeps.append)

        envelope = dispatcher.dispatch(RequestSpec(url=URL, max_retries=2))

        assert envelope.status_code == "200"
        assert sleeps == []

    @respx.mock
    def test_non_json_body_returns_nested_text_envelope(self, dispatcher):
        respx.post(URL).mock(return_value=Response(200, text="not json"))

        envelope = dispatcher.dispatch(RequestSpec(url=URL))

        assert envelope.to_dict() == {
            "status_code": 200,
            "response": {"status_code": 200, "response": "not json"},
        }

    def test_unexpected_requester_exception_is_retried(self, sleeps):
        class ExplodingRequester:
            calls = 0

            def attempt(self, url, method, headers, params, payload, timeout_ms):
                self.calls += 1
                raise RuntimeError("socket pool broken")

        requester = ExplodingRequester()
        dispatcher = RetryingDispatcher(requester=requester, sleep=sleeps.append)

        with pytest.raises(RetryExhausted) as exc_info:
            dispatcher.dispatch(RequestSpec(url=URL, max_retries=2))

        assert requester.calls == 3
        assert sleeps == [0.25, 0.5]
        last_error = exc_info.value.last_error
        assert isinstance(last_error, TransportError)
        assert isinstance(last_error.cause, RuntimeError)
        assert "socket pool broken" in last_error.reason

    @respx.mock
    def test_unencodable_header_value_exhausts_retries(self, dispatcher, sleeps):
        route = respx.post(URL).mock(return_value=Response(200, json={}))

        with pytest.raises(RetryExhausted) as exc_info:
            dispatcher.dispatch(
                RequestSpec(url=URL, headers={"x-user": "café"}, max_retries=1)
            )

        assert not route.called
        assert sleeps == [0.25]
        assert isinstance(exc_info.value.last_error, TransportError)


@pytest.mark.unit
class TestRequestSpec:
    """Default request inputs."""

    def test_defaults(self):
        spec = RequestSpec(url=URL)

        assert spec.method == "POST"
        assert spec.headers == {"Content-Type": "application/json"}
        assert spec.params == {}
        assert spec.payload == {}
        assert spec.timeout_ms == 5000
        assert spec.max_retries == 0
        assert spec.allowed_regions is None

    def test_defaults_are_not_shared(self):
        first, second = RequestSpec(url=URL), RequestSpec(url=URL)
        first.headers["x-extra"] = "1"

        assert "x-extra" not in second.headers


@pytest.mark.unit
class TestRegionRotation:
    """x-region header injection."""

    @respx.mock
    def test_regions_rotate_and_wrap(self, dispatcher):
        route = respx.post(URL).mock(
            side_effect=[Response(503), Response(503), Response(200, json={})]
        )

        dispatcher.dispatch(
            RequestSpec(url=URL, max_retries=2, allowed_regions=["us", "eu"])
        )

        regions = [call.request.headers["x-region"] for call in route.calls]
        assert regions == ["us", "eu", "us"]

    @respx.mock
    def test_no_region_header_without_regions(self, dispatcher):
        route = respx.post(URL).mock(return_value=Response(200, json={}))

        dispatcher.dispatch(RequestSpec(url=URL))

        assert "x-region" not in route.calls.last.request.headers

    def test_region_replaces_caller_header(self, sleeps):
        requester = ScriptedRequester([
            AttemptOutcome.success(ResponseEnvelope(status_code=200, response={})),
        ])
        dispatcher = RetryingDispatcher(requester=requester, sleep=sleeps.append)

        dispatcher.dispatch(
            RequestSpec(url=URL, headers={"X-Region": "ap"}, allowed_regions=["us"])
        )

        assert requester.calls == [{"x-region": "us"}]

    def test_caller_headers_are_not_mutated(self, sleeps):
        headers = {"Authorization": "Bearer t"}
        requester = ScriptedRequester([
            AttemptOutcome.success(ResponseEnvelope(status_code=200, response={})),
        ])
        dispatcher = RetryingDispatcher(requester=requester, sleep=sleeps.append)

        dispatcher.dispatch(RequestSpec(url=URL, headers=headers, allowed_regions=["us"]))

        assert headers == {"Authorization": "Bearer t"}


@pytest.mark.unit
class TestValidation:
    """Arguments rejected before any network call."""

    @pytest.mark.parametrize(
        "field,value,expected",
        [
            ("headers", [1, 2, 3], "array"),
            ("headers", None, "null"),
            ("params", "a=b", "string"),
            ("payload", 42, "number"),
            ("payload", [{"a": 1}], "array"),
        ],
    )
    @respx.mock
    def test_non_object_arguments_are_rejected(self, dispatcher, field, value, expected):
        route = respx.post(URL).mock(return_value=Response(200))

        with pytest.raises(InvalidArgument) as exc_info:
            dispatcher.dispatch(RequestSpec(url=URL, **{field: value}))

        assert exc_info.value.argument == field
        assert expected in exc_info.value.reason
        assert not route.called

    def test_empty_regions_are_rejected(self, dispatcher):
        with pytest.raises(InvalidArgument, match="cannot be an empty array"):
            dispatcher.dispatch(RequestSpec(url=URL, allowed_regions=[]))

    def test_string_regions_are_rejected(self, dispatcher):
        with pytest.raises(InvalidArgument) as exc_info:
            dispatcher.dispatch(RequestSpec(url=URL, allowed_regions="us"))
        assert exc_info.value.argument == "allowed_regions"

    def test_schedule_too_short_for_max_retries(self, dispatcher, sleeps):
        with pytest.raises(InvalidArgument, match="at least 7 elements"):
            dispatcher.dispatch(RequestSpec(url=URL, max_retries=6))
        assert sleeps == []

    def test_custom_schedule_bounds_max_retries(self):
        dispatcher = RetryingDispatcher(schedule=DelaySchedule([0, 1]))
        with pytest.raises(InvalidArgument, match="at least 3 elements"):
            dispatcher.dispatch(RequestSpec(url=URL, max_retries=2))

    @pytest.mark.parametrize("value", [-1, 1.5, True])
    def test_bad_max_retries(self, dispatcher, value):
        with pytest.raises(InvalidArgument) as exc_info:
            dispatcher.dispatch(RequestSpec(url=URL, max_retries=value))
        assert exc_info.value.argument == "max_retries"

    def test_unserializable_payload(self, dispatcher):
        with pytest.raises(InvalidArgument, match="not JSON-serializable"):
            dispatcher.dispatch(RequestSpec(url=URL, payload={"when": object()}))

    def test_non_string_keys_are_rejected(self, dispatcher):
        with pytest.raises(InvalidArgument, match="keys must be strings"):
            dispatcher.dispatch(RequestSpec(url=URL, headers={1: "a"}))


@pytest.mark.unit
class TestAttemptTrace:
    """Diagnostic logging of effective headers."""

    @respx.mock
    def test_each_attempt_logs_headers_with_redaction(self, dispatcher):
        respx.post(URL).mock(side_effect=[Response(500), Response(200, json={})])

        with capture_logs() as logs:
            dispatcher.dispatch(
                RequestSpec(
                    url=URL,
                    headers={"Authorization": "Bearer secret", "Accept": "application/json"},
                    max_retries=1,
                    allowed_regions=["us", "eu"],
                )
            )

        attempts = [e for e in logs if e["event"] == "dispatch_attempt"]
        assert [e["attempt"] for e in attempts] == [0, 1]
        assert all(e["log_level"] == "warning" for e in attempts)
        assert attempts[0]["headers"] == {
            "Authorization": REDACTED,
            "Accept": "application/json",
            "x-region": "us",
        }
        assert attempts[1]["headers"]["x-region"] == "eu"
        failures = [e for e in logs if e["event"] == "dispatch_attempt_failed"]
        assert len(failures) == 1
        assert failures[0]["status_code"] == 500

    def test_redact_headers_is_case_insensitive(self):
        assert redact_headers({"APIKEY": "k", "a": "b"}, ["apikey"]) == {
            "APIKEY": REDACTED,
            "a": "b",
        }


@pytest.mark.unit
class TestDispatchFunction:
    """Module-level dispatch call surface."""

    @respx.mock
    def test_returns_envelope_dict_and_sends_json(self, dispatcher):
        route = respx.post(URL).mock(return_value=Response(200, json={"greeting": "hi"}))

        result = dispatch(URL, payload={"name": "ana"}, dispatcher=dispatcher)

        assert result == {"status_code": 200, "response": {"greeting": "hi"}}
        request = route.calls.last.request
        assert json.loads(request.content) == {"name": "ana"}
        assert request.headers["content-type"] == "application/json"

    @respx.mock
    def test_method_is_honoured(self, dispatcher):
        route = respx.put(URL).mock(return_value=Response(204))

        result = dispatch(URL, method="put", dispatcher=dispatcher)

        assert route.called
        assert result["status_code"] == 204

    @respx.mock
    def test_defaults_to_settings_dispatcher(self):
        route = respx.post(URL).mock(return_value=Response(200, json={}))

        result = dispatch(URL)

        assert route.call_count == 1
        assert result["status_code"] == 200

    def test_null_headers_rejected(self, dispatcher):
        with pytest.raises(InvalidArgument):
            dispatch(URL, headers=None, dispatcher=dispatcher)


@pytest.mark.unit
class TestFromSettings:
    """Dispatcher construction from configuration."""

    def test_uses_configured_schedule_and_redaction(self):
        settings = Settings(
            dispatch=DispatchConfig(delay_schedule=[0, 0.1], redacted_headers=["x-secret"])
        )

        dispatcher = RetryingDispatcher.from_settings(settings)

        assert dispatcher.schedule == DelaySchedule([0, 0.1])
        with pytest.raises(InvalidArgument):
            dispatcher.dispatch(RequestSpec(url=URL, max_retries=2))

    @respx.mock
    def test_configured_timeout_is_fallback(self):
        settings = Settings(dispatch=DispatchConfig(timeout_ms=1500))
        seen = {}

        def record(request: httpx.Request) -> Response:
            seen["timeout"] = request.extensions["timeout"]
            return Response(200, json={})

        respx.post(URL).mock(side_effect=record)
        dispatcher = RetryingDispatcher.from_settings(settings)

        dispatcher.dispatch(RequestSpec(url=URL, timeout_ms=0))

        assert seen["timeout"]["read"] == 1.5
