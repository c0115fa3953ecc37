"""
Redaction of sensitive values in operation payloads and results.

Payloads sent to remote operations carry card numbers, security codes,
identifiers and encrypted blobs. Before a payload is logged or announced
in the event log it is passed through :func:`redact_object`, which picks a
masking strategy from each key name.
"""

from typing import Any, Callable, List, Optional, Pattern, Tuple
import re


def redact_card_number(value: Any) -> str:
    text = str(value)
    if len(text) < 4:
        return "****"
    return f"****{text[-4:]}"


def redact_full(value: Any = None) -> str:
    return "***"


def redact_encrypted(value: Any = None) -> str:
    return "[ENCRYPTED DATA]"


def redact_token(value: Any) -> str:
    """Keep a short prefix and suffix of long identifiers."""
    text = str(value)
    if len(text) <= 16:
        return "***"
    return f"{text[:8]}...{text[-4:]}"


def redact_email(value: Any) -> str:
    text = str(value)
    if "@" not in text:
        return "***@***.***"
    local, _, domain = text.partition("@")
    if len(local) <= 2:
        return f"{local}***@{domain}"
    return f"{local[:2]}***@{domain}"


def redact_expiry(value: Any) -> Any:
    if isinstance(value, dict) and "month" in value and "year" in value:
        return {"month": "**", "year": value["year"]}
    return "**/**"


def redact_step_up_value(value: Any) -> str:
    """Mask a step-up destination (masked phone number or email)."""
    text = str(value)
    if "@" in text:
        return redact_email(text)
    if len(text) <= 4:
        return "***"
    return f"{text[0]}{'*' * min(len(text) - 2, 6)}{text[-1]}"


def redact_first_last_two(value: Any) -> str:
    text = str(value)
    if len(text) <= 4:
        return "***"
    return f"{text[:2]}...{text[-2:]}"


_IPV4 = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")


def redact_ip_address(value: Any) -> str:
    text = str(value)
    match = _IPV4.match(text)
    if match:
        return f"{match.group(1)}.*.*.{match.group(4)}"
    # IPv6 or malformed: prefix only
    if len(text) > 8:
        return f"{text[:4]}...***"
    return "***"


Strategy = Callable[[Any], Any]

# Evaluated in order; the first matching key pattern wins.
_STRATEGIES: List[Tuple[Pattern, Strategy]] = [
    (re.compile(r"^(cardnumber|accountnumber|pan|number)$", re.I), redact_card_number),
    (re.compile(r"^(cvv|cvv2|cvc|securitycode)$", re.I), redact_full),
    (re.compile(r"^(otp|otpvalue|otpcode)$", re.I), redact_full),
    (re.compile(r"^(enc|encrypted)", re.I), redact_encrypted),
    (re.compile(r"^(expiry|expirydate|expirationdate)$", re.I), redact_expiry),
    (re.compile(r"^(clientappid|clientwalletaccountid)$", re.I), redact_full),
    (re.compile(r"^identifier$", re.I), redact_full),
    (re.compile(r"^value$", re.I), redact_step_up_value),
    # FIDO assertion/attestation blobs
    (re.compile(r"^code$", re.I), redact_first_last_two),
    (re.compile(r"^identityvalue$", re.I), redact_first_last_two),
    (re.compile(r"^consumerid$", re.I), redact_full),
    (re.compile(r"^(ipaddress|ip)$", re.I), redact_ip_address),
    (re.compile(r"^(clientdeviceid|deviceid|dfpsessionid|sessionid)$", re.I), redact_token),
    (re.compile(r"^enrollmentreferenceid$", re.I), redact_token),
]

_TOKEN_OR_KEY = re.compile(r"(token|key)", re.I)
_TOKENIZE = re.compile(r"(tokenize|tokenization)", re.I)
_CREDENTIAL = re.compile(r"(password|secret|apikey|privatekey|auth)", re.I)
_EMAIL = re.compile(r"email", re.I)


def get_strategy(key: str) -> Optional[Strategy]:
    """Return the masking strategy for a key, or None to keep the value."""
    for pattern, strategy in _STRATEGIES:
        if pattern.search(key):
            return strategy
    if _TOKEN_OR_KEY.search(key) and not _TOKENIZE.search(key):
        return redact_token
    if _CREDENTIAL.search(key):
        return redact_full
    if _EMAIL.search(key):
        return redact_email
    return None


def redact_value(key: str, value: Any) -> Any:
    """Redact a single value according to its key."""
    if value is None:
        return value

    strategy = get_strategy(key)
    if strategy:
        return strategy(value)

    if isinstance(value, list):
        return [redact_value(f"{key}[{index}]", item) for index, item in enumerate(value)]
    if isinstance(value, dict):
        return redact_object(value)
    return value


def redact_object(obj: Any) -> Any:
    """Recursively redact a payload. Non-container values pass through."""
    if isinstance(obj, list):
        return [redact_object(item) if isinstance(item, (dict, list)) else item for item in obj]
    if not isinstance(obj, dict):
        return obj
    return {key: redact_value(key, value) for key, value in obj.items()}
