"""
Root router: the sub-workflow multiplexer.

Every sub-workflow returns here when it finishes. The router step settles
which sub-workflow owns the thread and the route function dispatches to
its entry step. Priority: a pending action, then an active mode, then the
first missing piece of data (a card before shopping intent).
"""

from typing import Any, Dict, Mapping
import logging

from onboardflow.engine.graph import END
from onboardflow.engine.node import StepKind, step
from onboardflow.engine.state import WorkflowState
from onboardflow.workflows.constants import Action, Mode, Steps


logger = logging.getLogger(__name__)


@step(name=Steps.ROUTER, kind=StepKind.ROUTER, description="Select the active sub-workflow")
def router(state: WorkflowState, deps: Mapping[str, Any]) -> Dict[str, Any]:
    delta: Dict[str, Any] = {}

    action = state.get("action")
    if action in Action.ALL:
        logger.info(f"Router: consuming action '{action}'")
        return {"activeAction": action, "action": None}
    if action:
        logger.warning(f"Router: ignoring unknown action '{action}'")
        delta["action"] = None

    if state.get("activeAction"):
        logger.info(f"Router: action '{state.get('activeAction')}' in progress")
        return delta

    if state.get("mode"):
        logger.info(f"Router: mode '{state.get('mode')}' in progress")
        return delta

    if state.get("cardAdditionCompleted") is False:
        logger.info("Router: card addition incomplete, continuing add-card")
        delta["mode"] = Mode.ADD_CARD
    elif not state.get("cardData") or not state.get("tokenId"):
        logger.info("Router: no card on file, starting add-card")
        delta.update({"mode": Mode.ADD_CARD, "cardAdditionCompleted": False})
    elif not state.get("product") or not state.get("budget"):
        logger.info("Router: shopping intent incomplete, starting user-intent")
        delta["mode"] = Mode.USER_INTENT
    else:
        logger.info("Router: all data present")
    return delta


def route_from_router(state: Mapping[str, Any]) -> str:
    if state.get("activeAction") == Action.DELETE_CARD:
        return Steps.DELETE_TOKEN
    mode = state.get("mode")
    if mode == Mode.ADD_CARD:
        return Steps.AWAIT_CARD_DATA
    if mode == Mode.USER_INTENT:
        return Steps.CLARIFY_INTENT
    return END
