"""
Names shared by the onboarding workflow: steps, modes, actions, suspend
reasons and remote operations.
"""


class Steps:
    ROUTER = "router"

    # Add-card
    AWAIT_CARD_DATA = "await-card-data"
    TOKENIZE_CARD = "tokenize-card"
    AWAIT_SECURE_TOKEN = "await-secure-token"
    GET_ATTESTATION_OPTIONS = "get-attestation-options"
    DEVICE_BINDING = "device-binding"
    AWAIT_VALIDATION_METHOD = "await-validation-method"
    CREATE_CHALLENGE = "create-challenge"
    AWAIT_OTP = "await-otp"
    VALIDATE_OTP = "validate-otp"
    CHECK_TOKEN_STATUS = "check-token-status"
    REGISTER_ATTESTATION_OPTIONS = "register-attestation-options"
    AUTHENTICATE_ATTESTATION_OPTIONS = "authenticate-attestation-options"
    AWAIT_AUTHENTICATION_RESULT = "await-authentication-result"
    ENROLL_CARD = "enroll-card"
    CLEANUP = "cleanup"

    # User intent
    CLARIFY_INTENT = "clarify-intent"
    AWAIT_USER_INTENT = "await-user-intent"
    CLEAR_INTENT_MODE = "clear-intent-mode"

    # Delete card
    DELETE_TOKEN = "delete-token"
    SIGNAL_CARD_DELETED = "signal-card-deleted"
    CLEAR_DELETE_ACTION = "clear-delete-action"


class Mode:
    ADD_CARD = "add-card"
    USER_INTENT = "user-intent"


class Action:
    DELETE_CARD = "delete-card"

    ALL = (DELETE_CARD,)


class Reason:
    """Suspend reasons. The caller picks a UI prompt from these."""
    AWAITING_CARD_DATA = "awaiting_card_data"
    AWAITING_SECURE_TOKEN = "awaiting_secure_token"
    AWAITING_VALIDATION_METHOD = "awaiting_validation_method"
    AWAITING_OTP = "awaiting_otp"
    AWAITING_AUTHENTICATION_RESULT = "awaiting_authentication_result"
    AWAITING_USER_INTENT = "awaiting_user_intent"

    ALL = (
        AWAITING_CARD_DATA,
        AWAITING_SECURE_TOKEN,
        AWAITING_VALIDATION_METHOD,
        AWAITING_OTP,
        AWAITING_AUTHENTICATION_RESULT,
        AWAITING_USER_INTENT,
    )


class Operations:
    TOKENIZE_CARD = "tokenize-card"
    GET_DEVICE_ATTESTATION_OPTIONS = "get-device-attestation-options"
    DEVICE_BINDING_REQUEST = "device-binding-request"
    SUBMIT_IDV_STEP_UP_METHOD = "submit-idv-step-up-method"
    VALIDATE_OTP = "validate-otp"
    GET_TOKEN_STATUS = "get-token-status"
    ENROLL_CARD = "enroll-card"
    DELETE_TOKEN = "delete-token"


# Dependency bundle keys
DEP_TOOLS = "tools"
DEP_SETTINGS = "settings"
DEP_ENCRYPTOR = "encryptor"
DEP_INTENT_EXTRACTOR = "intent_extractor"
DEP_CLOCK = "clock"


# Attestation actions returned by get-device-attestation-options
AUTHENTICATE = "AUTHENTICATE"
REGISTER = "REGISTER"

# Device binding outcomes
APPROVED = "APPROVED"
CHALLENGE = "CHALLENGE"

TOKEN_ACTIVE = "ACTIVE"
SECURE_TOKEN_COMPLETE = "COMPLETE"

MERCHANT_EXTERNAL_CLIENT_ID = "onboardflow"
MERCHANT_APPLICATION_URL = "https://onboardflow.example.com"
MERCHANT_NAME = "OnboardFlow"
