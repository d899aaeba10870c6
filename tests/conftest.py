"""
Shared fixtures: in-memory database, permission store, credential provider
"""

import pytest
import pytest_asyncio

from src.memory.conversation_store import ConversationDatabase
from src.memory.permission_store import PermissionStore
from src.services.credentials import CredentialProvider
from tests.fakes import NOW, FakeRefresher


@pytest_asyncio.fixture
async def db():
    database = ConversationDatabase(":memory:")
    await database.async_init()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def permissions(db):
    return PermissionStore(db)


@pytest.fixture
def refresher():
    return FakeRefresher()


@pytest_asyncio.fixture
async def credentials(permissions, refresher):
    return CredentialProvider(permissions, refresher=refresher, clock=lambda: NOW, refresh_margin_seconds=60)
