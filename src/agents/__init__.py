"""
Agent workflows module.
Contains the chat orchestrator and the Gmail, Calendar and Docs actions it dispatches to.
"""

from src.agents.actions import ActionRegistry, build_default_registry
from src.agents.orchestrator import ChatOrchestrator, ConversationTurn, OrchestratorContext

__all__ = [
    "ActionRegistry",
    "ChatOrchestrator",
    "ConversationTurn",
    "OrchestratorContext",
    "build_default_registry",
]
