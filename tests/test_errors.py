"""Unit tests for error normalization and the send retry policy."""
import httpx
import pytest
from hypothesis import given
from hypothesis import strategies as st

from agentrelay.transport.errors import (
    Err,
    ErrorCode,
    Ok,
    ProxyError,
    normalize_exception,
    normalize_response,
    unwrap,
)
from agentrelay.transport.retry import SendRetryPolicy, is_timeout_error

REQUEST = httpx.Request("GET", "http://relay.test/x")


class TestNormalizeResponse:
    """Tests for normalize_response."""

    def test_success_json(self):
        """Test that a JSON 2xx body becomes Ok."""
        outcome = normalize_response(httpx.Response(200, json={"ok": True}, request=REQUEST))
        assert outcome == Ok({"ok": True})

    def test_empty_success_body(self):
        """Test that an empty 2xx body becomes Ok(None)."""
        outcome = normalize_response(httpx.Response(204, request=REQUEST))
        assert outcome == Ok(None)

    def test_success_with_invalid_json(self):
        """Test that a 2xx body that is not JSON is a RESPONSE_PARSE_ERROR."""
        outcome = normalize_response(httpx.Response(200, text="<html>", request=REQUEST))
        assert isinstance(outcome, Err)
        assert outcome.error.code == ErrorCode.RESPONSE_PARSE_ERROR
        assert outcome.error.status == 200

    def test_error_envelope(self):
        """Test that code, message and details are read from the error envelope."""
        body = {
            "error": {
                "code": "SESSION_NOT_FOUND",
                "message": "No such session",
                "details": {"session_id": "abc"},
                "timestamp": "2024-01-01T00:00:00Z",
            }
        }
        outcome = normalize_response(httpx.Response(404, json=body, request=REQUEST))
        assert isinstance(outcome, Err)
        error = outcome.error
        assert error.status == 404
        assert error.code == "SESSION_NOT_FOUND"
        assert error.message == "No such session"
        assert error.details == {"session_id": "abc"}

    def test_unparseable_error_body(self):
        """Test that a non-JSON error body falls back to the reason phrase."""
        outcome = normalize_response(httpx.Response(502, text="Bad gateway page", request=REQUEST))
        assert isinstance(outcome, Err)
        assert outcome.error.code == ErrorCode.UNKNOWN_ERROR
        assert outcome.error.message == "HTTP 502: Bad Gateway"

    def test_envelope_without_message(self):
        """Test that an envelope without a message reports the status."""
        outcome = normalize_response(
            httpx.Response(400, json={"error": {"code": "BAD"}}, request=REQUEST)
        )
        assert outcome.error.code == "BAD"
        assert outcome.error.message == "HTTP 400"

    def test_json_without_envelope(self):
        """Test that JSON without an error envelope reports only the status."""
        outcome = normalize_response(httpx.Response(500, json=["oops"], request=REQUEST))
        assert outcome.error.code == ErrorCode.UNKNOWN_ERROR
        assert outcome.error.message == "HTTP 500"

    @given(st.sampled_from([400, 401, 403, 404, 409, 422, 500, 502, 503]))
    def test_every_error_status_is_err(self, status):
        """Property test: every non-2xx status becomes Err with that status."""
        outcome = normalize_response(httpx.Response(status, text="nope", request=REQUEST))
        assert isinstance(outcome, Err)
        assert outcome.error.status == status


class TestNormalizeException:
    """Tests for normalize_exception."""

    def test_timeout(self):
        """Test that httpx timeouts become TIMEOUT_ERROR."""
        outcome = normalize_exception(httpx.ReadTimeout("read timed out", request=REQUEST))
        assert outcome.error.code == ErrorCode.TIMEOUT_ERROR
        assert outcome.error.status == 0

    def test_connect_error(self):
        """Test that connection failures become NETWORK_ERROR with status 0."""
        outcome = normalize_exception(httpx.ConnectError("refused", request=REQUEST))
        assert outcome.error.code == ErrorCode.NETWORK_ERROR
        assert outcome.error.status == 0
        assert outcome.error.message == "refused"

    def test_proxy_error_passes_through(self):
        """Test that an existing ProxyError is not wrapped again."""
        error = ProxyError(500, "X", "y")
        assert normalize_exception(error).error is error


class TestProxyError:
    """Tests for the ProxyError type."""

    def test_unwrap(self):
        """Test that unwrap returns Ok values and raises Err errors."""
        assert unwrap(Ok(5)) == 5
        with pytest.raises(ProxyError) as exc_info:
            unwrap(Err(ProxyError(418, "TEAPOT", "short and stout")))
        assert exc_info.value.code == "TEAPOT"

    def test_enum_code_is_stored_as_string(self):
        """Test that enum codes are stored and serialized as plain strings."""
        error = ProxyError(0, ErrorCode.NETWORK_ERROR, "down")
        assert error.code == "NETWORK_ERROR"
        assert error.to_dict() == {
            "status": 0,
            "code": "NETWORK_ERROR",
            "message": "down",
            "details": None,
        }
        assert str(error) == "down"


class TestTimeoutClassification:
    """Tests for is_timeout_error."""

    @pytest.mark.parametrize("code", ["TIMEOUT_ERROR", "TIMEOUT"])
    def test_timeout_codes(self, code):
        """Test that timeout codes are classified as timeouts."""
        assert is_timeout_error(ProxyError(504, code, "gateway"))

    @pytest.mark.parametrize("message", [
        "Request timeout",
        "failed to wait for screen to stabilize",
        "Failed to Wait For Condition: agent idle",
    ])
    def test_legacy_message_markers(self, message):
        """Test that legacy timeout phrases in messages are classified as timeouts."""
        assert is_timeout_error(ProxyError(500, "INTERNAL", message))

    def test_other_errors(self):
        """Test that validation and network errors are not timeouts."""
        assert not is_timeout_error(ProxyError(400, "VALIDATION_ERROR", "content is required"))
        assert not is_timeout_error(ProxyError(0, ErrorCode.NETWORK_ERROR, "connection refused"))

    @given(st.text(), st.text())
    def test_marker_anywhere_in_message(self, prefix, suffix):
        """Property test: "timeout" anywhere in the message marks a timeout."""
        assert is_timeout_error(ProxyError(500, "X", f"{prefix}timeout{suffix}"))


class TestSendRetryPolicy:
    """Tests for SendRetryPolicy."""

    def test_default_delays(self):
        """Test the default send retry delays."""
        assert SendRetryPolicy().delays() == [2.0, 4.0]

    def test_worst_case_latency(self):
        """Test the worst-case send latency with and without the auth fallback."""
        policy = SendRetryPolicy()
        assert policy.worst_case_latency(10.0) == 66.0
        assert policy.worst_case_latency(10.0, auth_fallback=False) == 36.0

    @given(st.integers(min_value=0, max_value=10), st.floats(min_value=0.1, max_value=10))
    def test_delays_grow_linearly(self, retries, base):
        """Property test: retry delays grow linearly with the base delay."""
        delays = SendRetryPolicy(max_retries=retries, base_delay=base).delays()
        assert len(delays) == retries
        for i, delay in enumerate(delays):
            assert delay == pytest.approx((i + 1) * base)
