"""
Delete-card sub-workflow, entered through the ``delete-card`` action.

delete-token -> signal-card-deleted -> clear-delete-action -> router
"""

from typing import Any, Dict, Mapping
import logging

from onboardflow.engine.node import StepKind, step
from onboardflow.engine.state import WorkflowState, message_event
from onboardflow.workflows.constants import Mode, Operations, Steps
from onboardflow.workflows.helpers import cleared, error_reason, is_error_response, require_tools
from onboardflow.workflows.schema import ADD_CARD_IN_FLIGHT_FIELDS, CARD_FIELDS


logger = logging.getLogger(__name__)


@step(name=Steps.DELETE_TOKEN, kind=StepKind.SIDE_EFFECT,
      description="Delete the provisioned token", guard_fields=("tokenDeleted",))
async def delete_token(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    tools = require_tools(deps)

    if state.get("tokenDeleted") is True:
        logger.info("Token already deleted, skipping")
        return {}

    token_id = state.get("tokenId")
    if not token_id:
        logger.warning("No token in state, nothing to delete")
        return {"events": [message_event("No card found to delete. Please add a card first.")]}

    payload = {
        "vProvisionedTokenID": token_id,
        "updateReason": {"reasonCode": "CUSTOMER_CONFIRMED"},
    }

    try:
        call = await tools.call(Operations.DELETE_TOKEN, payload)
    except Exception as e:
        logger.exception(f"Error in delete-token: {e}")
        return {"events": [message_event(
            "We encountered an issue while removing your card. Please try again later. "
            "Your card data has been preserved."
        )]}

    if is_error_response(call.result):
        reason = error_reason(call.result)
        logger.error(f"Token deletion rejected: {reason}")
        return {"events": call.events + [message_event(
            f"Your card could not be removed ({reason}). Your card data has been preserved."
        )]}

    logger.info(f"Token {token_id} deleted")
    return {
        "tokenDeleted": True,
        "cardDeletionSignal": (state.get("cardDeletionSignal") or 0) + 1,
        "events": call.events + [message_event(
            "Your card has been successfully removed. All associated data has been cleared."
        )],
    }


@step(name=Steps.SIGNAL_CARD_DELETED,
      description="Checkpoint the deletion signal before card state is cleared")
def signal_card_deleted(state: WorkflowState, deps: Mapping[str, Any]) -> None:
    return None


@step(name=Steps.CLEAR_DELETE_ACTION, kind=StepKind.CLEANUP,
      description="Finish the delete action and return to the router")
def clear_delete_action(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    delta: Dict[str, Any] = {"activeAction": None, "tokenDeleted": None}

    if state.get("tokenDeleted"):
        # cardDeletionSignal stays incremented
        delta.update(cleared(CARD_FIELDS))
        delta.update(cleared(ADD_CARD_IN_FLIGHT_FIELDS))
        delta["secureTokenRetryCount"] = 0
        if state.get("mode") == Mode.ADD_CARD:
            delta["mode"] = None
        logger.info("Card state cleared after deletion")
    else:
        logger.info(f"Deletion did not complete, preserving card state (mode: {state.get('mode')})")

    return delta
