"""
Orchestrator context - dependencies passed to the turn state machine
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

from src.agents.actions.registry import ActionRegistry
from src.config.settings import settings
from src.services.credentials import CredentialProvider


async def no_delay(seconds: float):
    """Delay function that returns immediately."""
    return None


def _local_now() -> datetime:
    return datetime.now(ZoneInfo(settings.default_timezone))


@dataclass
class OrchestratorContext:
    """Context holding dependencies for one orchestrator"""

    gateway_factory: Callable[[Optional[str], Optional[str]], Any]  # (model, api_key) -> ModelGateway
    credentials: CredentialProvider
    registry: ActionRegistry
    conversation_db: Any  # ConversationDatabase
    delay: Callable[[float], Awaitable[Any]] = asyncio.sleep
    clock: Callable[[], datetime] = _local_now
    narration_delay_seconds: float = field(default_factory=lambda: settings.narration_delay_seconds)
    retry_idempotent_actions: bool = field(default_factory=lambda: settings.retry_idempotent_actions)
    timezone_name: str = field(default_factory=lambda: settings.default_timezone)

    async def pause(self, seconds: Optional[float] = None):
        await self.delay(self.narration_delay_seconds if seconds is None else seconds)
