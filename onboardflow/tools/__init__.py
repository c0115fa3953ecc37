"""
Tools package - External operation registry, HTTP client and redaction.
"""

from onboardflow.tools.registry import Tool, ToolCallError, ToolCallResult, ToolRegistry
from onboardflow.tools.http import HttpToolClient, register_remote_tools
from onboardflow.tools.redaction import redact_object, redact_value
from onboardflow.tools.security import PayloadEncryptor, email_hash

__all__ = [
    "Tool",
    "ToolCallError",
    "ToolCallResult",
    "ToolRegistry",
    "HttpToolClient",
    "register_remote_tools",
    "redact_object",
    "redact_value",
    "PayloadEncryptor",
    "email_hash",
]
