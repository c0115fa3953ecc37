"""
Helpers shared by onboarding steps: dependency lookup, response shape
checks and field clearing.
"""

from typing import Any, Callable, Dict, Iterable, Mapping, Optional
import time

from onboardflow.config import Settings, settings as default_settings
from onboardflow.engine.errors import ConfigurationError
from onboardflow.tools.registry import ToolRegistry
from onboardflow.tools.security import PayloadEncryptor
from onboardflow.workflows.constants import (
    DEP_CLOCK,
    DEP_ENCRYPTOR,
    DEP_SETTINGS,
    DEP_TOOLS,
)


def require_tools(deps: Mapping[str, Any]) -> ToolRegistry:
    """Return the operation registry or fail the resume call."""
    registry = deps.get(DEP_TOOLS)
    if registry is None:
        raise ConfigurationError("Operation registry not found in dependencies")
    return registry


def get_settings(deps: Mapping[str, Any]) -> Settings:
    return deps.get(DEP_SETTINGS) or default_settings


def require_settings(deps: Mapping[str, Any], *names: str) -> Settings:
    """Return settings, failing when any named credential is unset."""
    config = get_settings(deps)
    missing = [name for name in names if not getattr(config, name, None)]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
    return config


def require_encryptor(deps: Mapping[str, Any]) -> PayloadEncryptor:
    encryptor = deps.get(DEP_ENCRYPTOR)
    if encryptor is None:
        raise ConfigurationError("Payload encryptor not found in dependencies")
    return encryptor


def now(deps: Mapping[str, Any]) -> float:
    """Current epoch seconds, from the injected clock when present."""
    clock: Optional[Callable[[], float]] = deps.get(DEP_CLOCK)
    return clock() if clock else time.time()


def epoch_string(deps: Mapping[str, Any]) -> str:
    return str(int(now(deps)))


def is_error_response(response: Any) -> bool:
    """A well-formed remote rejection carries an ``errorResponse`` object."""
    return isinstance(response, dict) and isinstance(response.get("errorResponse"), dict)


def error_reason(response: Mapping[str, Any]) -> str:
    error = response.get("errorResponse") or {}
    return error.get("reason") or error.get("message") or "unknown reason"


def dig(value: Any, *path: str) -> Any:
    """Follow nested dict keys, returning None when any level is missing."""
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def cleared(fields: Iterable[str]) -> Dict[str, Any]:
    """Delta that explicitly resets the given fields."""
    return {name: None for name in fields}
