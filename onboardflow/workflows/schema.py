"""
State schema of the onboarding workflow.

Public fields are returned to the caller; private fields (card data,
session data, raw remote responses) never leave the engine.
"""

from onboardflow.engine.state import Channel, Reducer, StateSchema


def _public(name: str, description: str = "", **kwargs) -> Channel:
    return Channel(name=name, description=description, **kwargs)


def _private(name: str, description: str = "", **kwargs) -> Channel:
    return Channel(name=name, description=description, private=True, **kwargs)


def create_onboarding_schema() -> StateSchema:
    """Build the channel declarations for the onboarding workflow."""
    return StateSchema([
        # Public
        _public("email", "Account email address"),
        _public("clientReferenceId", "Client reference id generated by the UI"),
        _public("product", "Product the user wants to buy"),
        _public("budget", "Budget in dollars"),
        _public("validationMethods", "Step-up methods offered by device binding"),
        _public("registerAttestationOptions", "Attestation options for the FIDO popup"),
        _public("tokenId", "Provisioned token id"),
        _public("action", "One-shot action request, handled ahead of any active mode",
                preempts=True),
        _public("cardDeletionSignal", "Counter bumped when card data is removed",
                reducer=Reducer.MAX, default=0),
        _public("isToolServerConnected", "Whether the operation server is reachable"),

        # Private
        _private("cardData", "Card number, expiry, cvv and cardholder name"),
        _private("secureToken", "Secure authentication session data"),
        _private("secureTokenRetryCount", "Failed secure authentication attempts", default=0),
        _private("clientDeviceId", "Device id generated by the UI"),
        _private("attestationOptions", "get-device-attestation-options response"),
        _private("deviceBinding", "device-binding-request response"),
        _private("selectedValidationMethod", "Step-up method chosen by the user"),
        _private("challenge", "submit-idv-step-up-method response"),
        _private("otpCode", "One-time code entered by the user"),
        _private("otpValidated", "Result of OTP validation"),
        _private("otpResponse", "Last validate-otp rejection"),
        _private("tokenStatus", "get-token-status response"),
        _private("registerOptions", "REGISTER attestation options response"),
        _private("authenticationResult", "FIDO popup result"),
        _private("enrollment", "enroll-card response"),
        _private("mode", "Active sub-workflow"),
        _private("activeAction", "Action being processed"),
        _private("tokenDeleted", "Whether delete-token succeeded"),
        _private("cardAdditionCompleted", "Whether add-card finished"),
        _private("userIntentInput", "Latest free-text message from the user"),
    ])


# Fields cleared when an add-card attempt ends
ADD_CARD_IN_FLIGHT_FIELDS = (
    "secureToken",
    "secureTokenRetryCount",
    "attestationOptions",
    "deviceBinding",
    "selectedValidationMethod",
    "challenge",
    "otpCode",
    "otpValidated",
    "otpResponse",
    "tokenStatus",
    "registerOptions",
    "authenticationResult",
    "validationMethods",
    "registerAttestationOptions",
)

# Card fields cleared when an attempt fails or the card is deleted
CARD_FIELDS = ("cardData", "tokenId", "enrollment", "cardAdditionCompleted")
