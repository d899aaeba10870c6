"""
Orchestrator routing - intent classification logic
"""

import json
from datetime import datetime
from typing import Any, Dict, Sequence

from loguru import logger
from pydantic import BaseModel, Field, field_validator

from src.agents.actions.registry import ActionRegistry
from src.agents.orchestrator.prompts import build_classification_prompt
from src.agents.orchestrator.state import TurnRoute

NO_ACTION = "none"


class RoutingDecision(BaseModel):
    """Structured output of the intent classifier. Immutable, one per turn."""

    model_config = {"frozen": True}

    requires_action: bool = Field(
        description="True when the latest user message asks for an email, calendar or document action"
    )
    user_confirmed: bool = Field(
        default=False,
        description=(
            "True only when the assistant already asked for confirmation of this exact action "
            "and the latest user message approves it"
        ),
    )
    action_name: str = Field(
        default=NO_ACTION,
        description="Name of the action from the catalogue, or 'none'",
    )
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Parameters for the action, using the names listed in the catalogue",
    )
    reasoning: str = Field(default="", description="Short explanation of the decision (not shown to the user)")

    @field_validator("parameters", mode="before")
    @classmethod
    def _parse_json(cls, value: Any) -> Any:
        # Some providers return the parameter object as a JSON string
        if isinstance(value, str):
            value = json.loads(value) if value.strip() else {}
        return value or {}


def route_for(decision: RoutingDecision) -> TurnRoute:
    """
    Map a decision to the next state.

    Nothing action-related happens unless requires_action is set, whatever
    the other fields say.
    """
    if not decision.requires_action or decision.action_name == NO_ACTION:
        return TurnRoute.PLAIN_CHAT
    if not decision.user_confirmed:
        return TurnRoute.CONFIRM
    return TurnRoute.ACT


async def classify_intent(
    gateway,
    messages: Sequence[Dict[str, str]],
    registry: ActionRegistry,
    now: datetime,
    timezone_name: str,
) -> RoutingDecision:
    """
    Single structured-generation call. Failures propagate to the caller.
    """
    prompt = build_classification_prompt(registry.describe(), now, timezone_name)
    decision = await gateway.classify(prompt, messages, RoutingDecision)

    logger.info(
        f"Intent classified: requires_action={decision.requires_action}, "
        f"confirmed={decision.user_confirmed}, action={decision.action_name}, route={route_for(decision).value}"
    )
    logger.debug(f"Classifier reasoning: {decision.reasoning}")
    return decision
