"""
User-intent sub-workflow: find out what the user wants to buy and their budget.

The conversational layer is injected as the ``intent_extractor`` dependency:
a callable ``(events, user_input) -> {"reply", "product", "budget"}``
(sync or async) that answers the user and extracts whatever it can.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
import inspect
import logging

from onboardflow.engine.errors import ConfigurationError
from onboardflow.engine.node import StepKind, interrupt, step
from onboardflow.engine.state import WorkflowState, message_event
from onboardflow.workflows.constants import DEP_INTENT_EXTRACTOR, Reason, Steps


logger = logging.getLogger(__name__)


IntentExtractor = Callable[
    [List[Dict[str, Any]], Optional[str]],
    Union[Dict[str, Any], Awaitable[Dict[str, Any]]],
]


def intent_complete(state: Mapping[str, Any]) -> bool:
    return bool(state.get("product") and state.get("budget"))


@step(name=Steps.CLARIFY_INTENT, kind=StepKind.SIDE_EFFECT,
      description="Ask for or extract product and budget", guard_fields=("product", "budget"))
async def clarify_intent(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    if intent_complete(state.data):
        logger.info(
            f"Product and budget already known ({state.get('product')}, "
            f"{state.get('budget')}), skipping clarification"
        )
        return {}

    extractor: Optional[IntentExtractor] = deps.get(DEP_INTENT_EXTRACTOR)
    if extractor is None:
        raise ConfigurationError("Intent extractor not found in dependencies")

    user_input = state.get("userIntentInput")
    events: List[Dict[str, Any]] = []
    if user_input:
        events.append(message_event(user_input, ui_only=False, role="user"))

    try:
        extraction = extractor(state.events + events, user_input)
        if inspect.isawaitable(extraction):
            extraction = await extraction
    except Exception as e:
        logger.exception(f"Error in clarify-intent: {e}")
        return {
            "userIntentInput": None,
            "events": events + [message_event(
                "Sorry, I didn't catch that. What would you like to buy, and what's your budget?",
                ui_only=False, role="assistant",
            )],
        }

    delta: Dict[str, Any] = {"userIntentInput": None}
    for name in ("product", "budget"):
        if extraction.get(name) is not None:
            delta[name] = extraction[name]

    reply = extraction.get("reply")
    if reply:
        events.append(message_event(reply, ui_only=False, role="assistant"))
    delta["events"] = events

    logger.info(f"Extracted intent: product={delta.get('product')}, budget={delta.get('budget')}")
    return delta


@step(name=Steps.AWAIT_USER_INTENT, kind=StepKind.INTERRUPT,
      description="Wait for the user's next message")
def await_user_intent(state: WorkflowState, deps: Mapping[str, Any]) -> None:
    if intent_complete(state.data) or state.get("userIntentInput"):
        return None
    interrupt(Reason.AWAITING_USER_INTENT)


@step(name=Steps.CLEAR_INTENT_MODE, kind=StepKind.CLEANUP,
      description="Leave user-intent mode")
def clear_intent_mode(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    logger.info("Clearing user-intent mode")
    return {"mode": None}
