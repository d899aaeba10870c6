"""
Shared API dependencies

Long-lived services are created once in the application lifespan and
stored on app.state; routes reach them through these dependency functions.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from fastapi import Header, HTTPException, Request, status
from loguru import logger

from src.agents.actions.registry import ActionRegistry, build_default_registry
from src.agents.orchestrator import ChatOrchestrator, OrchestratorContext
from src.llm.gateway import ModelGateway
from src.memory.conversation_store import ConversationDatabase
from src.memory.permission_store import PermissionStore
from src.services.credentials import CredentialProvider


@dataclass
class UserIdentity:
    """Caller identity asserted by the upstream auth layer"""
    user_id: str
    email: str
    name: str


@dataclass
class AppServices:
    conversation_db: ConversationDatabase
    permissions: PermissionStore
    credentials: CredentialProvider
    registry: ActionRegistry
    orchestrator: ChatOrchestrator

    @classmethod
    async def create(
        cls,
        db_path: Optional[str] = None,
        gateway_factory: Callable[[Optional[str], Optional[str]], Any] = ModelGateway.for_request,
        delay: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        refresher: Optional[Any] = None,
        registry: Optional[ActionRegistry] = None,
    ) -> "AppServices":
        """Open the database and wire the orchestrator. Must run on the serving event loop."""
        conversation_db = ConversationDatabase(db_path)
        await conversation_db.async_init()

        permissions = PermissionStore(conversation_db)
        credentials = CredentialProvider(permissions, refresher=refresher)
        registry = registry or build_default_registry()
        orchestrator = ChatOrchestrator(
            OrchestratorContext(
                gateway_factory=gateway_factory,
                credentials=credentials,
                registry=registry,
                conversation_db=conversation_db,
                delay=delay,
            )
        )
        return cls(conversation_db, permissions, credentials, registry, orchestrator)

    async def close(self):
        await self.conversation_db.close()


def get_services(request: Request) -> AppServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        logger.error("Application services are not initialized")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not ready")
    return services


def get_conversation_db(request: Request) -> ConversationDatabase:
    return get_services(request).conversation_db


def get_credentials(request: Request) -> CredentialProvider:
    return get_services(request).credentials


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return get_services(request).orchestrator


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> UserIdentity:
    """Identity from the trusted X-User-* headers; 401 when missing."""
    if not x_user_id or not x_user_email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return UserIdentity(user_id=x_user_id, email=x_user_email, name=x_user_name or x_user_email)
