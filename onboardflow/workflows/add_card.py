"""
Add-card sub-workflow.

Card data -> tokenization -> secure authentication -> device attestation
and binding (with optional OTP step-up) -> FIDO authentication -> enrollment.

Every side-effecting step follows the same shape: check its dependencies,
skip when its guarded field already holds a successful result, validate
its inputs, call the remote operation, and record success, a well-formed
rejection or a transient failure in state. Interrupt steps only check for
their awaited input and suspend when it is missing.
"""

from typing import Any, Callable, Dict, Mapping, Optional
import logging

from onboardflow.engine.node import StepKind, interrupt, step
from onboardflow.engine.state import WorkflowState, message_event
from onboardflow.tools.security import b64url, email_hash
from onboardflow.workflows.constants import (
    APPROVED,
    AUTHENTICATE,
    CHALLENGE,
    DEP_ENCRYPTOR,
    MERCHANT_APPLICATION_URL,
    MERCHANT_EXTERNAL_CLIENT_ID,
    MERCHANT_NAME,
    REGISTER,
    SECURE_TOKEN_COMPLETE,
    TOKEN_ACTIVE,
    Operations,
    Reason,
    Steps,
)
from onboardflow.workflows.helpers import (
    cleared,
    dig,
    epoch_string,
    error_reason,
    get_settings,
    is_error_response,
    now,
    require_encryptor,
    require_settings,
    require_tools,
)
from onboardflow.workflows.schema import ADD_CARD_IN_FLIGHT_FIELDS


logger = logging.getLogger(__name__)


def _say(content: str, *events: Dict[str, Any]) -> Dict[str, Any]:
    """Events delta: tool announcements first, then the message."""
    return {"events": [*events, message_event(content)]}


# ============================================================
# Card data and tokenization
# ============================================================

@step(name=Steps.AWAIT_CARD_DATA, kind=StepKind.INTERRUPT,
      description="Wait for the user to enter card details")
def await_card_data(state: WorkflowState, deps: Mapping[str, Any]) -> None:
    if not state.get("cardData"):
        interrupt(Reason.AWAITING_CARD_DATA)
    logger.info("Card data received")


def build_payment_instrument(card: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Build the payment instrument from card form data.

    Returns None when a field is missing or the expiry is not MM/YY or MM/YYYY.
    """
    number = card.get("cardNumber")
    expiry = card.get("expiryDate")
    cvv = card.get("cvv")
    name = card.get("cardholderName")
    if not (number and expiry and cvv and name):
        return None

    month, _, year = str(expiry).partition("/")
    month, year = month.strip(), year.strip()
    if not month or not year:
        return None

    return {
        "accountNumber": number,
        "name": name,
        "expirationDate": {
            "month": month,
            "year": f"20{year}" if len(year) == 2 else year,
        },
        "cvv2": cvv,
    }


@step(name=Steps.TOKENIZE_CARD, kind=StepKind.SIDE_EFFECT,
      description="Provision a token for the entered card", guard_fields=("tokenId",))
async def tokenize_card(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    if state.get("tokenId"):
        logger.info(f"Card already tokenized (tokenId: {state.get('tokenId')}), skipping")
        return {}

    config = require_settings(deps, "CLIENT_APP_ID", "ENC_SECRET", "ENC_API_KEY")
    encryptor = require_encryptor(deps)

    email = state.get("email")
    if not email:
        return _say("An email address is required before adding a card.")

    instrument = build_payment_instrument(state.get("cardData") or {})
    if instrument is None:
        return _say("The card details are incomplete. Please check the card number, "
                    "expiry date (MM/YY), security code and cardholder name.")

    # A failed tokenization clears the card so the UI drops its stored copy
    rejected = {
        "cardData": None,
        "cardDeletionSignal": (state.get("cardDeletionSignal") or 0) + 1,
    }

    try:
        payload = {
            "locale": "en_US",
            "panSource": "MANUALLYENTERED",
            "presentationType": ["ECOM"],
            "consumerEntryMode": "KEYENTERED",
            "protectionType": "CLOUD",
            "clientAppID": config.CLIENT_APP_ID,
            "clientWalletAccountEmailAddress": email,
            "clientWalletAccountEmailAddressHash": email_hash(email),
            "encPaymentInstrument": encryptor.encrypt(
                config.ENC_SECRET, config.ENC_API_KEY, instrument
            ),
        }
        call = await tools.call(Operations.TOKENIZE_CARD, payload)
    except Exception as e:
        logger.exception(f"Error in tokenize-card: {e}")
        return {
            **rejected,
            **_say("We encountered an issue while processing your card. The card data "
                   "has been cleared. Please try again with a different card or contact "
                   "your card issuer."),
        }

    token_id = dig(call.result, "data", "vProvisionedTokenID")
    if is_error_response(call.result) or not token_id:
        logger.error(f"Tokenization rejected: {call.result}")
        return {
            **rejected,
            **_say("Your card could not be added. The card data has been cleared. "
                   "Please try again with a different card or contact your card issuer.",
                   *call.events),
        }

    logger.info(f"Card tokenization successful, tokenId: {token_id}")
    return {
        "tokenId": token_id,
        **_say("Card tokenization successful! Your payment method is now secure.", *call.events),
    }


# ============================================================
# Secure authentication session
# ============================================================

def make_await_secure_token(retry_limit: int) -> Callable[..., Dict[str, Any]]:
    """
    Build the secure-session wait step for a given retry limit.

    The graph factory passes the same limit to ``make_route_secure_token``,
    so the message shown on the last failed attempt matches the route taken.
    """
    @step(name=Steps.AWAIT_SECURE_TOKEN, kind=StepKind.INTERRUPT,
          description="Wait for the secure authentication session", guard_fields=("secureToken",))
    def await_secure_token(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
        token = state.get("secureToken")
        if token:
            result = token.get("result") if isinstance(token, dict) else None
            if result is None or result == SECURE_TOKEN_COMPLETE:
                return {}

            attempts = (state.get("secureTokenRetryCount") or 0) + 1
            logger.warning(f"Secure authentication failed ({result}), attempt {attempts}/{retry_limit}")
            if attempts >= retry_limit:
                content = ("We're experiencing technical difficulties with the authentication "
                           "service. Please try again later.")
            else:
                content = "Secure authentication did not complete. Please try again."
            return {"secureToken": None, "secureTokenRetryCount": attempts, **_say(content)}

        logger.info(
            f"Waiting for secure authentication "
            f"(attempt {(state.get('secureTokenRetryCount') or 0) + 1})"
        )
        interrupt(Reason.AWAITING_SECURE_TOKEN)

    return await_secure_token


# ============================================================
# Device attestation and binding
# ============================================================

def _attestation_payload(
    state: WorkflowState,
    client_app_id: str,
    enc_authentication_data: str,
    attestation_type: str,
    reason_code: str,
) -> Dict[str, Any]:
    session = state.get("secureToken") or {}
    return {
        "vProvisionedTokenID": state.get("tokenId"),
        "dynamicData": {
            "authenticationAmount": "0.00",
            "currencyCode": "840",
            "merchantIdentifier": {
                "externalClientId": b64url(MERCHANT_EXTERNAL_CLIENT_ID),
                "applicationUrl": b64url(MERCHANT_APPLICATION_URL),
                "merchantName": b64url(MERCHANT_NAME),
            },
        },
        "clientAppID": client_app_id,
        "clientReferenceID": state.get("clientReferenceId"),
        "type": attestation_type,
        "reasonCode": reason_code,
        "sessionContext": session.get("sessionContext"),
        "browserData": session.get("browserData"),
        "encAuthenticationData": enc_authentication_data,
        "authenticationPreferencesRequested": {
            "selectedPopupForAuthenticate": False,
        },
    }


def _has_session_inputs(state: WorkflowState, *extra: str) -> bool:
    required = ("tokenId", "secureToken", "clientReferenceId") + extra
    missing = [name for name in required if not state.get(name)]
    if missing:
        logger.warning(f"Missing required state: {missing}")
    return not missing


@step(name=Steps.GET_ATTESTATION_OPTIONS, kind=StepKind.SIDE_EFFECT,
      description="Fetch device attestation options", guard_fields=("attestationOptions",))
async def get_attestation_options(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    if state.get("attestationOptions"):
        logger.info("Device attestation options already retrieved, skipping")
        return {}

    config = require_settings(deps, "CLIENT_APP_ID", "ENC_SECRET", "ENC_API_KEY")
    encryptor = require_encryptor(deps)

    if not _has_session_inputs(state, "email"):
        return _say("Some account details are missing. Please start adding your card again.")

    try:
        enc_data = encryptor.encrypt(
            config.ENC_SECRET, config.ENC_API_KEY,
            {"consumerInfo": {"emailAddress": state.get("email")}},
        )
        payload = _attestation_payload(state, config.CLIENT_APP_ID, enc_data,
                                       AUTHENTICATE, "PAYMENT")
        call = await tools.call(Operations.GET_DEVICE_ATTESTATION_OPTIONS, payload)
    except Exception as e:
        logger.exception(f"Error in get-attestation-options: {e}")
        return _say("We encountered an issue while retrieving device attestation options. "
                    "Please try again later.")

    if is_error_response(call.result):
        logger.error(f"Attestation options rejected: {call.result['errorResponse']}")
        return {
            "attestationOptions": call.result,
            **_say(f"Device attestation is not available ({error_reason(call.result)}).",
                   *call.events),
        }

    logger.info("Device attestation options retrieved successfully")
    return {
        "attestationOptions": call.result,
        **_say("Device attestation options retrieved successfully.", *call.events),
    }


@step(name=Steps.DEVICE_BINDING, kind=StepKind.SIDE_EFFECT,
      description="Bind this device to the token", guard_fields=("deviceBinding",))
async def device_binding(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    if state.get("deviceBinding"):
        logger.info("Device binding already completed, skipping")
        return {}

    if not _has_session_inputs(state):
        return _say("Some account details are missing. Please start adding your card again.")

    config = get_settings(deps)
    session = state.get("secureToken") or {}
    payload: Dict[str, Any] = {
        "vProvisionedTokenID": state.get("tokenId"),
        "clientReferenceId": state.get("clientReferenceId"),
        "platformType": "WEB",
        "reasonCode": "DEVICE_BINDING",
        "intent": "FIDO",
        "browserData": session.get("browserData"),
        "sessionContext": session.get("sessionContext"),
    }
    if config.CLIENT_APP_ID:
        payload["clientAppID"] = config.CLIENT_APP_ID

    email = state.get("email")
    if email:
        payload["clientWalletAccountEmailAddressHash"] = email_hash(email)
        encryptor = deps.get(DEP_ENCRYPTOR)
        if encryptor is not None and config.ENC_SECRET and config.ENC_API_KEY:
            try:
                payload["encBillingInfo"] = encryptor.encrypt(
                    config.ENC_SECRET, config.ENC_API_KEY, {"email": email}
                )
            except Exception as e:
                logger.warning(f"Failed to encrypt billing info: {e}")

    try:
        call = await tools.call(Operations.DEVICE_BINDING_REQUEST, payload)
    except Exception as e:
        logger.exception(f"Error in device-binding: {e}")
        return _say("We encountered an issue during device binding. Please try again later.")

    result = call.result
    status = dig(result, "status")
    step_up = dig(result, "stepUpRequest") or []
    validation_methods = [
        {"method": item.get("method") or "", "value": item.get("value") or ""}
        for item in step_up
    ] or None

    if status == APPROVED:
        content = "Device binding completed successfully."
    elif status == CHALLENGE:
        content = "Additional verification is required. Please choose how to receive your code."
    elif is_error_response(result):
        content = f"Device binding was declined ({error_reason(result)})."
    else:
        content = f"Device binding returned an unexpected status ({status})."

    logger.info(f"Device binding finished with status {status}")
    return {
        "deviceBinding": result,
        "validationMethods": validation_methods,
        **_say(content, *call.events),
    }


# ============================================================
# Step-up verification (OTP)
# ============================================================

@step(name=Steps.AWAIT_VALIDATION_METHOD, kind=StepKind.INTERRUPT,
      description="Wait for the user to pick a verification method")
def await_validation_method(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    selected = state.get("selectedValidationMethod")

    if selected and selected.get("identifier"):
        return {}

    if selected:
        options = dig(state.get("deviceBinding"), "stepUpRequest") or []
        match = next(
            (item for item in options
             if item.get("method") == selected.get("method")
             and item.get("value") == selected.get("value")),
            None,
        )
        if match and match.get("identifier"):
            logger.info("Enriching selected validation method with its identifier")
            return {
                "selectedValidationMethod": {
                    "method": match.get("method"),
                    "value": match.get("value"),
                    "identifier": match.get("identifier"),
                }
            }
        logger.warning("Selected validation method not found in step-up options")
        return {
            "selectedValidationMethod": None,
            **_say("The selected verification method is not available. Please choose another method."),
        }

    if state.get("validationMethods"):
        interrupt(Reason.AWAITING_VALIDATION_METHOD)

    logger.warning("No validation methods available")
    return _say("No verification methods are available for this card.")


@step(name=Steps.CREATE_CHALLENGE, kind=StepKind.SIDE_EFFECT,
      description="Send a one-time code via the selected method", guard_fields=("challenge",))
async def create_challenge(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    challenge = state.get("challenge")
    if challenge and not is_error_response(challenge):
        logger.info("Challenge already created successfully, skipping")
        return {}

    selected = state.get("selectedValidationMethod") or {}
    if not (state.get("tokenId") and selected.get("identifier") and state.get("clientReferenceId")):
        logger.warning("Missing tokenId, selected method identifier or clientReferenceId")
        return {
            "challenge": None,
            **_say("Some verification details are missing. Please start adding your card again."),
        }

    payload: Dict[str, Any] = {
        "vProvisionedTokenID": state.get("tokenId"),
        "stepUpRequestID": selected["identifier"],
        "date": epoch_string(deps),
        "clientReferenceId": state.get("clientReferenceId"),
    }
    client_app_id = get_settings(deps).CLIENT_APP_ID
    if client_app_id:
        payload["clientAppID"] = client_app_id

    try:
        call = await tools.call(Operations.SUBMIT_IDV_STEP_UP_METHOD, payload)
    except Exception as e:
        logger.exception(f"Error in create-challenge: {e}")
        # Drop a stale rejection so the route does not loop back to selection
        return {
            "challenge": None,
            **_say("We encountered an issue while creating the validation challenge. "
                   "Please try again later."),
        }

    if is_error_response(call.result):
        reason = error_reason(call.result)
        logger.error(f"Challenge creation rejected: {reason}")
        return {
            "challenge": call.result,
            "selectedValidationMethod": None,
            **_say(f"The selected validation method is not available ({reason}). "
                   f"Please choose another method.", *call.events),
        }

    logger.info("Challenge created successfully")
    return {
        "challenge": call.result,
        **_say("Validation challenge has been sent. Please check your selected method "
               "for verification.", *call.events),
    }


@step(name=Steps.AWAIT_OTP, kind=StepKind.INTERRUPT,
      description="Wait for the one-time code")
def await_otp(state: WorkflowState, deps: Mapping[str, Any]) -> None:
    if state.get("otpCode"):
        return None
    challenge = state.get("challenge")
    if not challenge or is_error_response(challenge):
        logger.warning("No challenge created yet, not waiting for a code")
        return None
    interrupt(Reason.AWAITING_OTP)


def code_expired(expiration: Any, current: float) -> bool:
    """True when the challenge carries an epoch expiry that has passed."""
    if not expiration:
        return False
    try:
        return current > float(expiration)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable code expiration {expiration!r}, treating code as valid")
        return False


@step(name=Steps.VALIDATE_OTP, kind=StepKind.SIDE_EFFECT,
      description="Validate the one-time code", guard_fields=("otpValidated",))
async def validate_otp(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    if state.get("otpValidated") is True:
        logger.info("OTP already validated successfully, skipping")
        return {}

    if not (state.get("tokenId") and state.get("otpCode") and state.get("clientReferenceId")):
        logger.warning("Missing tokenId, otpCode or clientReferenceId")
        return {"otpCode": None, **_say("Please enter the verification code you received.")}

    if code_expired(dig(state.get("challenge"), "codeExpiration"), now(deps)):
        logger.info("OTP expired before validation")
        return {
            "otpCode": None,
            **_say("The verification code has expired. Please request a new code."),
        }

    payload: Dict[str, Any] = {
        "vProvisionedTokenID": state.get("tokenId"),
        "otpValue": state.get("otpCode"),
        "date": epoch_string(deps),
        "clientReferenceId": state.get("clientReferenceId"),
    }
    client_app_id = get_settings(deps).CLIENT_APP_ID
    if client_app_id:
        payload["clientAppID"] = client_app_id

    try:
        call = await tools.call(Operations.VALIDATE_OTP, payload)
    except Exception as e:
        logger.exception(f"Error in validate-otp: {e}")
        return {
            "otpCode": None,
            "otpValidated": False,
            **_say("We encountered an issue while validating your code. Please try again later."),
        }

    if is_error_response(call.result):
        reason = error_reason(call.result)
        logger.error(f"OTP validation rejected: {reason}")
        return {
            "otpValidated": False,
            "otpResponse": call.result,
            "otpCode": None,
            **_say(f"The verification code is incorrect ({reason}). Please try again.",
                   *call.events),
        }

    logger.info("OTP validation successful")
    return {
        "otpValidated": True,
        "otpResponse": None,
        **_say("Verification successful! Your device has been securely registered.", *call.events),
    }


@step(name=Steps.CHECK_TOKEN_STATUS, kind=StepKind.SIDE_EFFECT,
      description="Check that the token is active", guard_fields=("tokenStatus",))
async def check_token_status(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    if state.get("tokenStatus"):
        logger.info("Token status already checked, skipping")
        return {}

    if not state.get("tokenId"):
        return _say("No card token found. Please add your card again.")

    try:
        call = await tools.call(Operations.GET_TOKEN_STATUS,
                                {"vProvisionedTokenID": state.get("tokenId")})
    except Exception as e:
        logger.exception(f"Error in check-token-status: {e}")
        return _say("We encountered an issue while checking your token status. "
                    "Please try again later.")

    result = call.result
    if is_error_response(result):
        reason = error_reason(result)
        logger.error(f"Token status check rejected: {reason}")
        return {
            "tokenStatus": result,
            **_say(f"We encountered a technical issue while checking your token status "
                   f"({reason}). Please contact support if this issue persists.", *call.events),
        }

    status = dig(result, "data", "tokenInfo", "tokenStatus") or "UNKNOWN"
    if status != TOKEN_ACTIVE:
        content = (f"Token Status Warning! Token Status: {status}. Token may need additional "
                   f"processing to become ACTIVE.")
    else:
        content = (f"Token status verified successfully! Your token is {status.lower()}. "
                   f"Your card is now ready to use for secure payments.")

    logger.info(f"Token status: {status}")
    return {"tokenStatus": result, **_say(content, *call.events)}


# ============================================================
# FIDO attestation and enrollment
# ============================================================

def has_authentication_context(options: Any) -> bool:
    context = dig(options, "data", "authenticationContext")
    return bool(dig(context, "identifier") and dig(context, "payload"))


@step(name=Steps.REGISTER_ATTESTATION_OPTIONS, kind=StepKind.SIDE_EFFECT,
      description="Fetch REGISTER attestation options", guard_fields=("registerOptions",))
async def register_attestation_options(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    if state.get("registerOptions"):
        logger.info("Register attestation options already retrieved, skipping")
        return {}

    config = require_settings(deps, "CLIENT_APP_ID", "ENC_SECRET", "ENC_API_KEY")
    encryptor = require_encryptor(deps)

    if not _has_session_inputs(state, "email"):
        return _say("Some account details are missing. Please start adding your card again.")

    try:
        enc_data = encryptor.encrypt(
            config.ENC_SECRET, config.ENC_API_KEY,
            {"consumerInfo": {"emailAddress": state.get("email")}},
        )
        payload = _attestation_payload(state, config.CLIENT_APP_ID, enc_data,
                                       REGISTER, "DEVICE_BINDING")
        call = await tools.call(Operations.GET_DEVICE_ATTESTATION_OPTIONS, payload)
    except Exception as e:
        logger.exception(f"Error in register-attestation-options: {e}")
        return _say("We encountered an issue while retrieving device registration "
                    "attestation options. Please try again later.")

    if has_authentication_context(call.result):
        content = "Device registration attestation options retrieved successfully."
    else:
        content = ("Attestation Options Register Partial Success! Cannot send AUTHENTICATE "
                   "message without identifier and payload")

    return {
        "registerOptions": call.result,
        "registerAttestationOptions": call.result,
        **_say(content, *call.events),
    }


@step(name=Steps.AUTHENTICATE_ATTESTATION_OPTIONS,
      description="Expose AUTHENTICATE attestation options to the UI",
      guard_fields=("registerAttestationOptions",))
def authenticate_attestation_options(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    if state.get("registerAttestationOptions"):
        logger.info("Authenticate attestation options already exposed, skipping")
        return {}

    options = state.get("attestationOptions")
    if not options:
        return _say("We encountered an issue while exposing device authentication "
                    "attestation options. Please try again later.")

    if has_authentication_context(options):
        content = "Device authentication attestation options retrieved successfully."
    else:
        content = ("Attestation Options Authenticate Partial Success! Cannot send "
                   "AUTHENTICATE message without identifier and payload")

    return {"registerAttestationOptions": options, **_say(content)}


@step(name=Steps.AWAIT_AUTHENTICATION_RESULT, kind=StepKind.INTERRUPT,
      description="Wait for the FIDO popup result")
def await_authentication_result(state: WorkflowState, deps: Mapping[str, Any]) -> None:
    if not state.get("authenticationResult"):
        logger.info("Waiting for the authentication popup result")
        interrupt(Reason.AWAITING_AUTHENTICATION_RESULT)


def build_enrollment_payload(
    state: WorkflowState,
    consumer_id: Optional[str],
    timestamp: str,
) -> Dict[str, Any]:
    assurance = dig(state.get("authenticationResult"), "assuranceData") or {}
    session = state.get("secureToken") or {}
    browser = session.get("browserData") or {}

    action = dig(state.get("attestationOptions"), "data", "authenticationContext", "action")
    fido_blob = assurance.get("fidoBlob")
    if action == AUTHENTICATE:
        fido_field = {"fidoAssertionData": {"code": fido_blob}}
    elif action == REGISTER:
        fido_field = {"fidoAttestationData": {"code": fido_blob}}
    else:
        fido_field = {}

    return {
        "clientReferenceId": state.get("clientReferenceId"),
        "enrollmentReferenceData": {
            "enrollmentReferenceId": state.get("tokenId"),
            "enrollmentReferenceType": "TOKEN_REFERENCE_ID",
            "enrollmentReferenceProvider": "VTS",
        },
        "consumer": {
            "consumerId": consumer_id,
            "countryCode": "US",
            "languageCode": "en",
            "consumerIdentity": {
                "identityType": "EMAIL_ADDRESS",
                "identityValue": state.get("email"),
                "identityProvider": "PARTNER",
            },
        },
        "appInstance": {
            "userAgent": browser.get("userAgent"),
            "applicationName": "OnboardFlow",
            "countryCode": "US",
            "ipAddress": browser.get("ipAddress"),
            "clientDeviceId": state.get("clientDeviceId"),
        },
        "assuranceData": [
            {
                "verificationType": "DEVICE",
                "verificationEntity": "10",
                "verificationEvents": ["02"],
                "verificationMethod": "23",
                "verificationResults": "01",
                "verificationTimestamp": timestamp,
                "methodResults": {
                    "dfpSessionId": session.get("dfpSessionID"),
                    "identifier": assurance.get("identifier"),
                    **fido_field,
                },
            }
        ],
    }


@step(name=Steps.ENROLL_CARD, kind=StepKind.SIDE_EFFECT,
      description="Enroll the authenticated card", guard_fields=("enrollment",))
async def enroll_card(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    enrollment = state.get("enrollment")
    if enrollment and not is_error_response(enrollment):
        logger.info("Card enrollment already completed, skipping")
        return {}

    config = require_settings(deps, "CONSUMER_ID")

    if not dig(state.get("authenticationResult"), "assuranceData"):
        logger.error("Missing assuranceData in authentication result")
        return _say("Unable to add card. The authentication data is incomplete.")

    try:
        payload = build_enrollment_payload(state, config.CONSUMER_ID, epoch_string(deps))
        call = await tools.call(Operations.ENROLL_CARD, payload)
    except Exception as e:
        logger.exception(f"Error in enroll-card: {e}")
        return _say("We encountered an issue while enrolling your card. Please try again later.")

    if is_error_response(call.result):
        reason = error_reason(call.result)
        logger.error(f"Card enrollment rejected: {reason}")
        return {
            "enrollment": call.result,
            **_say(f"Your card could not be enrolled ({reason}).", *call.events),
        }

    logger.info("Card enrollment completed successfully")
    return {"enrollment": call.result, **_say("Card enrolled successfully.", *call.events)}


# ============================================================
# Cleanup
# ============================================================

def enrollment_succeeded(state: Mapping[str, Any]) -> bool:
    enrollment = state.get("enrollment")
    return bool(enrollment) and not is_error_response(enrollment)


@step(name=Steps.CLEANUP, kind=StepKind.CLEANUP,
      description="End the add-card attempt and return to the router")
def cleanup(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    delta = cleared(ADD_CARD_IN_FLIGHT_FIELDS)
    delta.update({"secureTokenRetryCount": 0, "mode": None})

    if enrollment_succeeded(state.data):
        logger.info("Add-card completed")
        delta["cardAdditionCompleted"] = True
        return delta

    logger.info("Add-card attempt abandoned, clearing card data")
    delta.update(cleared(("cardData", "tokenId", "enrollment")))
    delta["cardAdditionCompleted"] = False
    if state.get("cardData"):
        delta["cardDeletionSignal"] = (state.get("cardDeletionSignal") or 0) + 1
    delta.update(_say("We couldn't finish adding your card. Please enter your card details to try again."))
    return delta
