"""
Chat Orchestrator - classifies each turn and chats, confirms, or acts
"""

from src.agents.orchestrator.agent import ChatOrchestrator
from src.agents.orchestrator.context import OrchestratorContext, no_delay
from src.agents.orchestrator.routing import RoutingDecision, classify_intent, route_for
from src.agents.orchestrator.state import ConversationTurn, TurnRoute
from src.agents.orchestrator.transcript import TranscriptSink

__all__ = [
    "ChatOrchestrator",
    "ConversationTurn",
    "OrchestratorContext",
    "RoutingDecision",
    "TranscriptSink",
    "TurnRoute",
    "classify_intent",
    "no_delay",
    "route_for",
]
