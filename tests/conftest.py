"""
Shared fixtures: scriptable fake operations, a fake encryptor and intent
extractor, and onboarding executors wired to them.
"""

import pytest
import json
from copy import deepcopy
from typing import Any, Dict, List, Optional, Tuple

from onboardflow.config import Settings
from onboardflow.engine.executor import Executor
from onboardflow.storage.checkpoint import InMemoryCheckpointStore
from onboardflow.tools.http import ONBOARDING_OPERATIONS
from onboardflow.tools.registry import ToolRegistry
from onboardflow.workflows.constants import AUTHENTICATE, REGISTER, Operations
from onboardflow.workflows.onboarding import create_onboarding_workflow
from onboardflow.workflows.schema import create_onboarding_schema


NOW = 1_700_000_000
TOKEN_ID = "tok-4111-0000-aaaa-bbbb"

CARD = {
    "cardNumber": "4111111111111111",
    "expiryDate": "12/27",
    "cvv": "123",
    "cardholderName": "Jane Doe",
}

ACCOUNT = {"email": "jane@example.com", "clientReferenceId": "ref-1", "clientDeviceId": "device-1"}

SECURE_TOKEN = {
    "result": "COMPLETE",
    "sessionContext": {"secureToken": "st-1"},
    "browserData": {"userAgent": "Mozilla/5.0", "ipAddress": "10.1.2.3"},
    "dfpSessionID": "dfp-1",
}

STEP_UP = [
    {"method": "OTPSMS", "value": "+1******1234", "identifier": "su-sms"},
    {"method": "OTPEMAIL", "value": "j***@example.com", "identifier": "su-email"},
]

AUTH_RESULT = {"assuranceData": {"identifier": "ad-1", "fidoBlob": "fido-blob-value"}}


class FakeOperations:
    """
    Scriptable stand-in for the remote operation server.

    A response may be a value, an exception to raise, a callable of the
    payload, or a list consumed one item per call.
    """

    def __init__(self):
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.attestation_action = REGISTER
        self.responses: Dict[str, Any] = {
            Operations.TOKENIZE_CARD: {"data": {"vProvisionedTokenID": TOKEN_ID}},
            Operations.GET_DEVICE_ATTESTATION_OPTIONS: self.attestation_options,
            Operations.DEVICE_BINDING_REQUEST: {"status": "CHALLENGE", "stepUpRequest": STEP_UP},
            Operations.SUBMIT_IDV_STEP_UP_METHOD: {"status": "SENT", "codeExpiration": NOW + 600},
            Operations.VALIDATE_OTP: {"status": "VALIDATED"},
            Operations.GET_TOKEN_STATUS: {"data": {"tokenInfo": {"tokenStatus": "ACTIVE"}}},
            Operations.ENROLL_CARD: {"status": "SUCCESS", "enrollmentId": "enr-1"},
            Operations.DELETE_TOKEN: {"status": "DELETED"},
        }

    def attestation_options(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if payload["type"] == AUTHENTICATE:
            context = {"action": self.attestation_action}
            if self.attestation_action == AUTHENTICATE:
                context.update(identifier="ac-auth", payload="auth-challenge")
            return {"data": {"authenticationContext": context}}
        return {"data": {"authenticationContext": {
            "action": REGISTER, "identifier": "ac-register", "payload": "register-challenge",
        }}}

    def payloads(self, operation: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.calls if name == operation]

    def count(self, operation: str) -> int:
        return len(self.payloads(operation))

    def registry(self) -> ToolRegistry:
        registry = ToolRegistry()
        for operation in ONBOARDING_OPERATIONS:
            registry.add(self._handler(operation), name=operation)
        return registry

    def _handler(self, operation: str):
        async def handle(payload: Dict[str, Any]) -> Any:
            self.calls.append((operation, payload))
            response = self.responses[operation]
            if isinstance(response, list):
                response = response.pop(0)
            if isinstance(response, Exception):
                raise response
            if callable(response):
                return response(payload)
            return deepcopy(response)

        return handle


class FakeEncryptor:
    """Reversible stand-in for message-level encryption."""

    def __init__(self):
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def encrypt(self, secret: str, api_key: str, data) -> str:
        self.calls.append((secret, api_key, dict(data)))
        return "enc." + json.dumps(data, sort_keys=True)


class FakeExtractor:
    """Intent extractor that always finds the same product and budget."""

    def __init__(self, product: Optional[str] = "running shoes", budget: Optional[int] = 120):
        self.product = product
        self.budget = budget
        self.calls: List[Tuple[List[Dict[str, Any]], Optional[str]]] = []

    def __call__(self, events, user_input):
        self.calls.append((list(events), user_input))
        if not user_input:
            return {"reply": "What would you like to buy, and what's your budget?"}
        return {
            "reply": f"Got it, {self.product} for about ${self.budget}.",
            "product": self.product,
            "budget": self.budget,
        }


def make_settings(**overrides) -> Settings:
    values = dict(
        CLIENT_APP_ID="app-1",
        ENC_SECRET="enc-secret",
        ENC_API_KEY="enc-key",
        CONSUMER_ID="consumer-1",
        SECURE_TOKEN_RETRY_LIMIT=1,
        TOOL_SERVER_URL=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def operations() -> FakeOperations:
    return FakeOperations()


@pytest.fixture
def encryptor() -> FakeEncryptor:
    return FakeEncryptor()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def deps(operations, encryptor, extractor) -> Dict[str, Any]:
    return {
        "tools": operations.registry(),
        "settings": make_settings(),
        "encryptor": encryptor,
        "intent_extractor": extractor,
        "clock": lambda: NOW,
    }


@pytest.fixture
def make_executor(deps):
    """Factory for onboarding executors; keyword arguments replace dependencies."""
    def factory(retry_limit: int = 1, store=None, **overrides) -> Executor:
        bundle = {**deps, **overrides}
        bundle = {key: value for key, value in bundle.items() if value is not None}
        return Executor(
            create_onboarding_workflow(retry_limit),
            create_onboarding_schema(),
            store if store is not None else InMemoryCheckpointStore(),
            deps=bundle,
        )

    return factory
