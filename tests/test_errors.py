"""
streamfold - Error Taxonomy Tests

Verifies:
- Error payload serialization
- httpx failure mapping per provider
- In-stream vendor error records
"""

import httpx
import pytest

from streamfold.core.errors import (
    AuthError,
    ConfigError,
    ErrorKind,
    HttpError,
    ModelNotAvailableError,
    ProviderError,
    RateLimitError,
    StreamingError,
    handle_anthropic_error,
    handle_google_error,
    handle_openai_error,
    handle_provider_error,
    provider_error_from_payload,
)


def status_error(status_code: int, body=None, headers=None, url="https://example.test/v1") -> httpx.HTTPStatusError:
    request = httpx.Request("POST", url)
    if body is None:
        response = httpx.Response(status_code, headers=headers, request=request)
    else:
        response = httpx.Response(status_code, json=body, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


# ============================================================
# Error payloads
# ============================================================

class TestErrorDetails:
    """Serialization of error payloads."""

    def test_to_dict_omits_empty_fields(self):
        error = ConfigError("model is required", param="model")

        data = error.error.to_dict()["error"]

        assert data["kind"] == "config"
        assert data["code"] == "config_error"
        assert data["details"] == {"param": "model"}
        assert "provider" not in data
        assert "retry_after" not in data

    def test_rate_limit_payload(self):
        error = RateLimitError("openai", retry_after=30, request_id="req_1")

        data = error.error.to_dict()["error"]

        assert data["retry_after"] == 30
        assert data["retryable"] is True
        assert error.status_code == 429
        assert error.kind == ErrorKind.RATE_LIMIT

    def test_message_is_exception_text(self):
        assert str(StreamingError("bad frame")) == "bad frame"


# ============================================================
# HTTP failure mapping
# ============================================================

class TestHttpMapping:
    """httpx exceptions -> taxonomy."""

    def test_openai_auth(self):
        error = handle_openai_error(
            status_error(401, {"error": {"message": "Incorrect API key", "code": "invalid_api_key"}},
                         headers={"x-request-id": "req_vendor"}),
            request_id="req_1",
        )

        assert isinstance(error, AuthError)
        assert error.error.provider_request_id == "req_vendor"
        assert error.error.request_id == "req_1"

    def test_openai_model_not_found_code(self):
        error = handle_openai_error(
            status_error(400, {"error": {"message": "no model", "code": "model_not_found"}})
        )

        assert isinstance(error, ModelNotAvailableError)

    def test_google_list_wrapped_error(self):
        error = handle_google_error(
            status_error(400, [{"error": {"code": 400, "message": "bad field", "status": "INVALID_ARGUMENT"}}])
        )

        assert isinstance(error, ProviderError)
        assert error.error.code == "invalid_argument"
        assert not error.error.retryable

    def test_anthropic_overloaded(self):
        error = handle_anthropic_error(
            status_error(529, {"type": "error", "error": {"type": "overloaded_error", "message": "busy"}})
        )

        assert isinstance(error, ProviderError)
        assert error.error.retryable
        assert error.status_code == 529

    def test_rate_limit_default_retry_after(self):
        error = handle_google_error(status_error(429, {"error": {"message": "quota"}}, headers={"retry-after": "soon"}))

        assert isinstance(error, RateLimitError)
        assert error.error.retry_after == 60

    def test_non_json_body(self):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(502, text="Bad Gateway", request=request)

        error = handle_openai_error(httpx.HTTPStatusError("502", request=request, response=response))

        assert isinstance(error, ProviderError)
        assert error.error.code == "upstream_error"
        assert "Bad Gateway" in error.error.message

    def test_timeout(self):
        error = handle_openai_error(httpx.ReadTimeout("timed out"))

        assert isinstance(error, HttpError)
        assert error.error.code == "read_timeout"
        assert error.error.retryable

    def test_dispatch_by_provider(self):
        error = handle_provider_error("anthropic_vertex", httpx.ConnectError("refused"))

        assert isinstance(error, HttpError)
        assert error.error.provider == "anthropic_vertex"

    def test_taxonomy_errors_pass_through(self):
        original = StreamingError("already mapped")

        assert handle_provider_error("gemini", original) is original


# ============================================================
# In-stream error records
# ============================================================

class TestInStreamErrors:
    """Vendor error records inside the event stream."""

    def test_overloaded_is_rate_limit(self):
        error = provider_error_from_payload(
            "anthropic_vertex",
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
            request_id="req_1",
        )

        assert isinstance(error, RateLimitError)
        assert error.error.message == "Overloaded"

    def test_generic_error_record(self):
        payload = {"error": {"code": 500, "message": "Internal error", "status": "INTERNAL"}}

        error = provider_error_from_payload("gemini", payload)

        assert isinstance(error, ProviderError)
        assert error.error.code == "INTERNAL"
        assert error.error.details["payload"] == payload

    def test_non_object_error_field(self):
        error = provider_error_from_payload("openai", {"error": "something broke"})

        assert isinstance(error, ProviderError)
        assert "something broke" in error.error.message
