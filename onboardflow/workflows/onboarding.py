"""
Onboarding Workflow Factory.

Wires the root router and the three sub-workflows into one graph:

```
router ─┬─→ await-card-data → tokenize-card → await-secure-token → ... → cleanup ─→ router
        ├─→ clarify-intent → await-user-intent ─→ clear-intent-mode ─→ router
        ├─→ delete-token → signal-card-deleted → clear-delete-action ─→ router
        └─→ END
```
"""

from typing import Optional
import logging

from onboardflow.config import settings
from onboardflow.engine.graph import Graph, END
from onboardflow.workflows import add_card, delete_card, user_intent
from onboardflow.workflows.constants import Steps
from onboardflow.workflows.router import route_from_router, router
from onboardflow.workflows.routing import (
    make_route_secure_token,
    route_attestation_options,
    route_authenticate_attestation_options,
    route_await_otp,
    route_card_data,
    route_create_challenge,
    route_device_binding,
    route_register_attestation_options,
    route_token_status,
    route_tokenize_card,
    route_user_intent,
    route_validate_otp,
    route_validation_method,
)


logger = logging.getLogger(__name__)


def create_onboarding_workflow(secure_token_retry_limit: Optional[int] = None) -> Graph:
    """
    Create the onboarding workflow graph.

    Args:
        secure_token_retry_limit: Failed secure authentication attempts
            tolerated before the add-card attempt is abandoned

    Returns:
        Configured Graph instance
    """
    if secure_token_retry_limit is None:
        secure_token_retry_limit = settings.SECURE_TOKEN_RETRY_LIMIT

    graph = Graph(
        name="Onboarding Workflow",
        description=(
            "Links a payment card (tokenize, bind device, verify, enroll), handles "
            "card deletion and clarifies the user's shopping intent."
        ),
    )

    graph.add_step(router)
    graph.add_steps([
        # Add-card
        add_card.await_card_data,
        add_card.tokenize_card,
        add_card.make_await_secure_token(secure_token_retry_limit),
        add_card.get_attestation_options,
        add_card.device_binding,
        add_card.await_validation_method,
        add_card.create_challenge,
        add_card.await_otp,
        add_card.validate_otp,
        add_card.check_token_status,
        add_card.register_attestation_options,
        add_card.authenticate_attestation_options,
        add_card.await_authentication_result,
        add_card.enroll_card,
        add_card.cleanup,
        # User intent
        user_intent.clarify_intent,
        user_intent.await_user_intent,
        user_intent.clear_intent_mode,
        # Delete card
        delete_card.delete_token,
        delete_card.signal_card_deleted,
        delete_card.clear_delete_action,
    ])

    graph.add_conditional_edge(
        Steps.ROUTER,
        route_from_router,
        [Steps.AWAIT_CARD_DATA, Steps.CLARIFY_INTENT, Steps.DELETE_TOKEN, END],
    )

    # Add-card
    graph.add_conditional_edge(
        Steps.AWAIT_CARD_DATA, route_card_data,
        [Steps.AWAIT_CARD_DATA, Steps.TOKENIZE_CARD],
    )
    graph.add_conditional_edge(
        Steps.TOKENIZE_CARD, route_tokenize_card,
        [Steps.AWAIT_SECURE_TOKEN, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.AWAIT_SECURE_TOKEN, make_route_secure_token(secure_token_retry_limit),
        [Steps.AWAIT_SECURE_TOKEN, Steps.GET_ATTESTATION_OPTIONS, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.GET_ATTESTATION_OPTIONS, route_attestation_options,
        [Steps.AUTHENTICATE_ATTESTATION_OPTIONS, Steps.DEVICE_BINDING, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.DEVICE_BINDING, route_device_binding,
        [Steps.CHECK_TOKEN_STATUS, Steps.AWAIT_VALIDATION_METHOD, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.AWAIT_VALIDATION_METHOD, route_validation_method,
        [Steps.AWAIT_VALIDATION_METHOD, Steps.CREATE_CHALLENGE, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.CREATE_CHALLENGE, route_create_challenge,
        [Steps.AWAIT_VALIDATION_METHOD, Steps.AWAIT_OTP, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.AWAIT_OTP, route_await_otp,
        [Steps.AWAIT_OTP, Steps.VALIDATE_OTP, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.VALIDATE_OTP, route_validate_otp,
        [Steps.AWAIT_OTP, Steps.CHECK_TOKEN_STATUS, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.CHECK_TOKEN_STATUS, route_token_status,
        [Steps.REGISTER_ATTESTATION_OPTIONS, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.REGISTER_ATTESTATION_OPTIONS, route_register_attestation_options,
        [Steps.AWAIT_AUTHENTICATION_RESULT, Steps.CLEANUP],
    )
    graph.add_conditional_edge(
        Steps.AUTHENTICATE_ATTESTATION_OPTIONS, route_authenticate_attestation_options,
        [Steps.AWAIT_AUTHENTICATION_RESULT, Steps.CLEANUP],
    )
    graph.add_edge(Steps.AWAIT_AUTHENTICATION_RESULT, Steps.ENROLL_CARD)
    graph.add_edge(Steps.ENROLL_CARD, Steps.CLEANUP)
    graph.add_edge(Steps.CLEANUP, Steps.ROUTER)

    # User intent
    graph.add_edge(Steps.CLARIFY_INTENT, Steps.AWAIT_USER_INTENT)
    graph.add_conditional_edge(
        Steps.AWAIT_USER_INTENT, route_user_intent,
        [Steps.CLARIFY_INTENT, Steps.CLEAR_INTENT_MODE],
    )
    graph.add_edge(Steps.CLEAR_INTENT_MODE, Steps.ROUTER)

    # Delete card; the signal step forces a checkpoint before state is cleared
    graph.add_edge(Steps.DELETE_TOKEN, Steps.SIGNAL_CARD_DELETED)
    graph.add_edge(Steps.SIGNAL_CARD_DELETED, Steps.CLEAR_DELETE_ACTION)
    graph.add_edge(Steps.CLEAR_DELETE_ACTION, Steps.ROUTER)

    graph.set_entry_point(Steps.ROUTER)

    errors = graph.validate()
    if errors:
        raise ValueError(f"Invalid onboarding workflow: {errors}")

    logger.info(f"Created onboarding workflow with {len(graph.steps)} steps")
    return graph
