"""
Route functions of the onboarding workflow.

Each function inspects state only and returns the next step name.
Success moves forward, a well-formed rejection returns to the nearest step
that can correct its input, and anything else ends the attempt in cleanup.
"""

from typing import Any, Callable, Mapping
import logging

from onboardflow.workflows.add_card import has_authentication_context
from onboardflow.workflows.constants import APPROVED, AUTHENTICATE, CHALLENGE, REGISTER, TOKEN_ACTIVE, Steps
from onboardflow.workflows.helpers import dig, is_error_response
from onboardflow.workflows.user_intent import intent_complete


logger = logging.getLogger(__name__)


# ============================================================
# Add-card
# ============================================================

def route_card_data(state: Mapping[str, Any]) -> str:
    if state.get("cardData"):
        return Steps.TOKENIZE_CARD
    return Steps.AWAIT_CARD_DATA


def route_tokenize_card(state: Mapping[str, Any]) -> str:
    if state.get("tokenId"):
        return Steps.AWAIT_SECURE_TOKEN
    return Steps.CLEANUP


def make_route_secure_token(retry_limit: int) -> Callable[[Mapping[str, Any]], str]:
    """Build the secure-token router for a given retry limit."""
    def route_secure_token(state: Mapping[str, Any]) -> str:
        if state.get("secureToken"):
            return Steps.GET_ATTESTATION_OPTIONS
        if (state.get("secureTokenRetryCount") or 0) >= retry_limit:
            logger.info("Secure authentication retry limit reached")
            return Steps.CLEANUP
        return Steps.AWAIT_SECURE_TOKEN

    return route_secure_token


def route_attestation_options(state: Mapping[str, Any]) -> str:
    action = dig(state.get("attestationOptions"), "data", "authenticationContext", "action")
    if action == AUTHENTICATE:
        return Steps.AUTHENTICATE_ATTESTATION_OPTIONS
    if action == REGISTER:
        return Steps.DEVICE_BINDING
    return Steps.CLEANUP


def route_device_binding(state: Mapping[str, Any]) -> str:
    status = dig(state.get("deviceBinding"), "status")
    if status == APPROVED:
        return Steps.CHECK_TOKEN_STATUS
    if status == CHALLENGE:
        return Steps.AWAIT_VALIDATION_METHOD
    return Steps.CLEANUP


def route_validation_method(state: Mapping[str, Any]) -> str:
    selected = state.get("selectedValidationMethod")
    if selected and selected.get("identifier"):
        return Steps.CREATE_CHALLENGE
    if not selected and not state.get("validationMethods"):
        return Steps.CLEANUP
    return Steps.AWAIT_VALIDATION_METHOD


def route_create_challenge(state: Mapping[str, Any]) -> str:
    challenge = state.get("challenge")
    if is_error_response(challenge):
        logger.info("Challenge rejected, returning to method selection")
        return Steps.AWAIT_VALIDATION_METHOD
    if challenge:
        return Steps.AWAIT_OTP
    return Steps.CLEANUP


def route_await_otp(state: Mapping[str, Any]) -> str:
    if state.get("otpCode"):
        return Steps.VALIDATE_OTP
    challenge = state.get("challenge")
    if not challenge or is_error_response(challenge):
        return Steps.CLEANUP
    return Steps.AWAIT_OTP


def route_validate_otp(state: Mapping[str, Any]) -> str:
    validated = state.get("otpValidated")
    if validated is True:
        return Steps.CHECK_TOKEN_STATUS
    if validated is False or validated is None:
        return Steps.AWAIT_OTP
    logger.warning(f"Unexpected otpValidated value: {validated!r}")
    return Steps.CLEANUP


def route_token_status(state: Mapping[str, Any]) -> str:
    if dig(state.get("tokenStatus"), "data", "tokenInfo", "tokenStatus") == TOKEN_ACTIVE:
        return Steps.REGISTER_ATTESTATION_OPTIONS
    return Steps.CLEANUP


def route_register_attestation_options(state: Mapping[str, Any]) -> str:
    if has_authentication_context(state.get("registerOptions")):
        return Steps.AWAIT_AUTHENTICATION_RESULT
    return Steps.CLEANUP


def route_authenticate_attestation_options(state: Mapping[str, Any]) -> str:
    if has_authentication_context(state.get("attestationOptions")):
        return Steps.AWAIT_AUTHENTICATION_RESULT
    return Steps.CLEANUP


# ============================================================
# User intent
# ============================================================

def route_user_intent(state: Mapping[str, Any]) -> str:
    if intent_complete(state):
        return Steps.CLEAR_INTENT_MODE
    return Steps.CLARIFY_INTENT
