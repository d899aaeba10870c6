"""
Orchestrator turn state
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from src.agents.actions.registry import Organizer


class TurnRoute(str, Enum):
    """States of one chat turn: CLASSIFY -> {PLAIN_CHAT | CONFIRM | ACT} -> DONE | ERROR"""
    CLASSIFY = "classify"
    PLAIN_CHAT = "plain_chat"
    CONFIRM = "confirm"
    ACT = "act"
    DONE = "done"
    ERROR = "error"


@dataclass
class ConversationTurn:
    """One user submission; built fresh per request, never persisted as a unit"""
    thread_id: str
    user_id: str
    messages: List[Dict[str, str]]
    model: str
    api_key: Optional[str]
    organizer: Organizer
    user_name: str = field(default="")

    @property
    def last_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.get("role") == "user":
                return message.get("content", "")
        return ""
