"""
Payload protection helpers.

Message-level encryption is provided by an injected ``PayloadEncryptor``;
this module only defines its interface and the email hash used by the
tokenization and device-binding payloads.
"""

from typing import Any, Mapping, Protocol
import base64
import hashlib


def email_hash(email: str) -> str:
    """SHA-256 of the email address, base64url encoded without padding."""
    digest = hashlib.sha256(email.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def b64url(text: str) -> str:
    """Base64url encode a short identifier without padding."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


class PayloadEncryptor(Protocol):
    """Encrypts a JSON-serializable payload with a shared secret."""

    def encrypt(self, secret: str, api_key: str, data: Mapping[str, Any]) -> str:
        """Return the encrypted, compact-serialized payload."""
