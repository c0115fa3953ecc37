"""
Tests for the external operation layer: registry, redaction and HTTP client.
"""

import pytest
import httpx

from onboardflow.tools.http import (
    ONBOARDING_OPERATIONS,
    HttpToolClient,
    register_remote_tools,
)
from onboardflow.tools.redaction import get_strategy, redact_object, redact_value
from onboardflow.tools.registry import ToolCallError, ToolCallResult, ToolRegistry
from onboardflow.tools.security import b64url, email_hash


# ============================================================
# Registry Tests
# ============================================================

class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_decorator(self):
        """Test registering with the decorator."""
        registry = ToolRegistry()

        @registry.register("get-token-status")
        async def get_token_status(payload):
            """Look up a token."""
            return {"data": {"tokenInfo": {"tokenStatus": "ACTIVE"}}}

        assert "get-token-status" in registry
        assert len(registry) == 1
        assert registry.get("get-token-status").description == "Look up a token."
        assert registry.list_tools() == [
            {"name": "get-token-status", "description": "Look up a token."}
        ]

    def test_add_and_remove(self):
        """Test the non-decorator API."""
        registry = ToolRegistry()
        registry.add(lambda payload: {}, name="delete-token")
        assert registry.has("delete-token")
        assert registry.remove("delete-token") is True
        assert registry.remove("delete-token") is False

    @pytest.mark.asyncio
    async def test_call_returns_result_and_events(self):
        """Test that calls announce redacted payloads and results."""
        registry = ToolRegistry()

        @registry.register("tokenize-card")
        async def tokenize(payload):
            return {"data": {"vProvisionedTokenID": "tok-1234567890abcdef"}}

        call = await registry.call("tokenize-card", {
            "clientAppID": "app-1",
            "encPaymentInstrument": "eyJhbGciOi...",
            "clientWalletAccountEmailAddress": "jane@example.com",
        })

        assert isinstance(call, ToolCallResult)
        assert call.result == {"data": {"vProvisionedTokenID": "tok-1234567890abcdef"}}

        tool_call, tool_result = call.events
        assert tool_call == {
            "type": "tool_call",
            "name": "tokenize-card",
            "args": {
                "clientAppID": "***",
                "encPaymentInstrument": "[ENCRYPTED DATA]",
                "clientWalletAccountEmailAddress": "ja***@example.com",
            },
        }
        assert tool_result["type"] == "tool_result"
        assert tool_result["content"] == {"data": {"vProvisionedTokenID": "tok-1234...cdef"}}

    @pytest.mark.asyncio
    async def test_call_sync_operation(self):
        """Test that sync operations are supported."""
        registry = ToolRegistry()
        registry.add(lambda payload: {"echo": payload["value"]}, name="echo")
        call = await registry.call("echo", {"value": "x"})
        assert call.result == {"echo": "x"}

    @pytest.mark.asyncio
    async def test_call_unknown_operation(self):
        """Test calling an unregistered operation."""
        with pytest.raises(ToolCallError) as exc_info:
            await ToolRegistry().call("missing", {})
        assert exc_info.value.operation == "missing"

    @pytest.mark.asyncio
    async def test_operation_errors_propagate(self):
        """Test that operation failures reach the calling step."""
        registry = ToolRegistry()

        @registry.register("validate-otp")
        async def fail(payload):
            raise ToolCallError("validate-otp", "HTTP 503")

        with pytest.raises(ToolCallError):
            await registry.call("validate-otp", {})


# ============================================================
# Redaction Tests
# ============================================================

class TestRedaction:
    """Tests for key-based payload redaction."""

    def test_card_fields(self):
        """Test card number, security code and expiry masking."""
        assert redact_value("accountNumber", "4111111111111111") == "****1111"
        assert redact_value("cardNumber", "12") == "****"
        assert redact_value("cvv2", "123") == "***"
        assert redact_value("expirationDate", {"month": "12", "year": "2027"}) == {
            "month": "**", "year": "2027"
        }
        assert redact_value("expiryDate", "12/27") == "**/**"

    def test_otp_and_identifiers(self):
        """Test one-time codes and step-up identifiers are hidden."""
        assert redact_value("otpValue", "123456") == "***"
        assert redact_value("identifier", "step-up-1") == "***"
        assert redact_value("consumerId", "c-1") == "***"

    def test_step_up_value(self):
        """Test masked phone numbers and emails."""
        assert redact_value("value", "+15551234567") == "+******7"
        assert redact_value("value", "jane@example.com") == "ja***@example.com"
        assert redact_value("value", "abc") == "***"

    def test_tokens_and_keys(self):
        """Test long identifiers keep a prefix and suffix."""
        assert redact_value("vProvisionedTokenID", "abcdefgh12345678wxyz") == "abcdefgh...wxyz"
        assert redact_value("apiKey", "short") == "***"
        assert redact_value("clientDeviceId", "device-0123456789-abcd") == "device-0...abcd"

    def test_tokenize_is_not_a_token(self):
        """Test keys about tokenization are not masked as tokens."""
        assert get_strategy("tokenizationResult") is None
        assert redact_value("tokenizationResult", "ok") == "ok"

    def test_credentials(self):
        """Test secrets and authentication data are hidden."""
        assert redact_value("password", "hunter2") == "***"
        assert redact_value("sharedSecret", "s") == "***"
        assert redact_value("authenticationContext", {"payload": "x"}) == "***"

    def test_fido_code_and_ip(self):
        """Test FIDO blobs and IP addresses."""
        assert redact_value("code", "abcdefgh") == "ab...gh"
        assert redact_value("ipAddress", "192.168.1.20") == "192.*.*.20"
        assert redact_value("ipAddress", "2001:db8::1") == "2001...***"

    def test_email(self):
        """Test email masking."""
        assert redact_value("email", "jo@example.com") == "jo***@example.com"
        assert redact_value("emailAddress", "not-an-email") == "***@***.***"

    def test_none_and_plain_values(self):
        """Test values that need no masking pass through."""
        assert redact_value("cvv", None) is None
        assert redact_value("locale", "en_US") == "en_US"

    def test_nested_objects(self):
        """Test recursive redaction through dicts and lists."""
        payload = {
            "status": "CHALLENGE",
            "stepUpRequest": [
                {"method": "OTPSMS", "value": "+15551234567", "identifier": "id-1"},
            ],
            "encPaymentInstrument": {"cardNumber": "4111111111111111"},
        }
        assert redact_object(payload) == {
            "status": "CHALLENGE",
            "stepUpRequest": [
                {"method": "OTPSMS", "value": "+******7", "identifier": "***"},
            ],
            "encPaymentInstrument": "[ENCRYPTED DATA]",
        }

    def test_redaction_does_not_mutate(self):
        """Test that redaction returns a copy."""
        payload = {"cvv": "123"}
        redact_object(payload)
        assert payload == {"cvv": "123"}

    def test_non_dict_passthrough(self):
        """Test scalars and lists of scalars are unchanged."""
        assert redact_object("text") == "text"
        assert redact_object([1, 2]) == [1, 2]


class TestSecurity:
    """Tests for payload protection helpers."""

    def test_email_hash(self):
        """Test the SHA-256 base64url hash has no padding."""
        digest = email_hash("jane@example.com")
        assert digest == email_hash("jane@example.com")
        assert digest != email_hash("john@example.com")
        assert len(digest) == 43
        assert "=" not in digest and "+" not in digest and "/" not in digest

    def test_b64url(self):
        """Test short identifier encoding."""
        assert b64url("OnboardFlow") == "T25ib2FyZEZsb3c"


# ============================================================
# HTTP Client Tests
# ============================================================

def make_client(handler) -> HttpToolClient:
    transport = httpx.MockTransport(handler)
    return HttpToolClient(
        "http://tools.test",
        client=httpx.AsyncClient(base_url="http://tools.test", transport=transport),
    )


class TestHttpToolClient:
    """Tests for the remote operation client."""

    @pytest.mark.asyncio
    async def test_call_posts_payload(self):
        """Test an operation is a JSON POST to its endpoint."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = request.read()
            return httpx.Response(200, json={"data": {"tokenInfo": {"tokenStatus": "ACTIVE"}}})

        client = make_client(handler)
        result = await client.call("get-token-status", {"vProvisionedTokenID": "tok-1"})
        await client.aclose()

        assert seen["method"] == "POST"
        assert seen["path"] == "/tools/get-token-status"
        assert b"tok-1" in seen["body"]
        assert result["data"]["tokenInfo"]["tokenStatus"] == "ACTIVE"

    @pytest.mark.asyncio
    async def test_rejection_is_a_result(self):
        """Test a well-formed rejection body is returned, not raised."""
        client = make_client(lambda request: httpx.Response(
            200, json={"errorResponse": {"reason": "invalidOTP"}}
        ))
        result = await client.call("validate-otp", {})
        assert result == {"errorResponse": {"reason": "invalidOTP"}}

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Test non-2xx responses raise ToolCallError."""
        client = make_client(lambda request: httpx.Response(502, text="bad gateway"))
        with pytest.raises(ToolCallError) as exc_info:
            await client.call("enroll-card", {})
        assert "HTTP 502" in str(exc_info.value)
        assert exc_info.value.operation == "enroll-card"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test timeouts raise ToolCallError."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(ToolCallError) as exc_info:
            await client.call("tokenize-card", {})
        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test connection failures raise ToolCallError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(ToolCallError):
            await client.call("delete-token", {})

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        """Test a body that is not JSON raises ToolCallError."""
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ToolCallError):
            await client.call("delete-token", {})

    @pytest.mark.asyncio
    async def test_ping(self):
        """Test the health check."""
        healthy = make_client(lambda request: httpx.Response(200, json={"status": "ok"}))
        assert await healthy.ping() is True

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        assert await make_client(refuse).ping() is False

    @pytest.mark.asyncio
    async def test_register_remote_tools(self):
        """Test wiring remote operations into a registry."""
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json={"ok": True})

        registry = register_remote_tools(ToolRegistry(), make_client(handler))

        assert len(registry) == len(ONBOARDING_OPERATIONS)
        call = await registry.call("submit-idv-step-up-method", {"stepUpRequestID": "id-1"})
        assert call.result == {"ok": True}
        assert paths == ["/tools/submit-idv-step-up-method"]
        assert call.events[0]["args"] == {"stepUpRequestID": "id-1"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
