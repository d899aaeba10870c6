"""
Conversation database abstraction layer.

Provides:
- SQLite initialization with WAL mode for concurrency
- Conversation and message persistence (threads, per-turn messages)
- Soft deletion and per-chat message counting
- Message truncation for the model context window

The same aiosqlite connection is shared with the PermissionStore.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite
from loguru import logger

from src.config.settings import resolve_data_path, settings
from src.utils.errors import ConversationDeletedError, ConversationNotFoundError


SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id, updated_at);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id TEXT NOT NULL REFERENCES conversations(id),
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id, id);

CREATE TABLE IF NOT EXISTS app_permissions (
    user_id TEXT NOT NULL,
    app_id TEXT NOT NULL,
    access_token TEXT,
    refresh_token TEXT,
    expires_at TEXT,
    scopes TEXT NOT NULL DEFAULT '[]',
    is_connected INTEGER NOT NULL DEFAULT 0,
    connected_at TEXT,
    last_used_at TEXT,
    PRIMARY KEY (user_id, app_id)
);
"""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_title(messages: Sequence[Dict[str, str]], max_length: Optional[int] = None) -> str:
    """Title from the first user message, truncated with an ellipsis."""
    max_length = max_length or settings.conversation_title_max_length
    first_user = next((m.get("content", "") for m in messages if m.get("role") == "user"), "")
    first_user = " ".join(first_user.split())
    if not first_user:
        return "New Chat"
    if len(first_user) > max_length:
        return first_user[:max_length] + "..."
    return first_user


class ConversationDatabase:
    """Abstraction layer for conversation storage"""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize conversation database

        Args:
            db_path: Path to SQLite database (defaults to settings.conversation_db_path)
        """
        self._conn: Optional[aiosqlite.Connection] = None
        self._initialized = False

        if db_path is None:
            db_path = settings.conversation_db_path

        if db_path == ":memory:":
            self.db_path = db_path
        else:
            path = resolve_data_path(db_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path = str(path)

    async def async_init(self):
        """Open the connection and create tables - call this from lifespan startup"""
        if self._initialized:
            return

        try:
            conn = await aiosqlite.connect(self.db_path, timeout=10.0)
            conn.row_factory = aiosqlite.Row

            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
            await conn.execute("PRAGMA busy_timeout=5000")
            await conn.executescript(SCHEMA)
            await conn.commit()

            self._conn = conn
            self._initialized = True
            logger.info(f"Initialized conversation database at {self.db_path}")
        except Exception as e:
            logger.error(f"Failed to initialize conversation database: {e}")
            raise

    @property
    def connection(self) -> aiosqlite.Connection:
        """Shared aiosqlite connection"""
        if not self._initialized or self._conn is None:
            raise RuntimeError("ConversationDatabase not initialized. Call async_init() first.")
        return self._conn

    async def close(self):
        """Close the aiosqlite connection"""
        if self._conn:
            try:
                await self._conn.close()
                logger.debug("Closed aiosqlite connection")
            except Exception as e:
                logger.warning(f"Error closing aiosqlite connection: {e}")
            finally:
                self._conn = None
                self._initialized = False

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def _get_conversation_row(self, thread_id: str) -> Optional[aiosqlite.Row]:
        cursor = await self.connection.execute(
            "SELECT * FROM conversations WHERE id = ?", (thread_id,)
        )
        return await cursor.fetchone()

    async def ensure_conversation(
        self,
        thread_id: str,
        user_id: str,
        messages: Sequence[Dict[str, str]],
    ) -> bool:
        """
        Create the conversation if it does not exist yet.

        Returns:
            True when a new conversation was created

        Raises:
            ConversationDeletedError: The thread was soft-deleted
            ConversationNotFoundError: The thread belongs to another user
        """
        row = await self._get_conversation_row(thread_id)
        if row is not None:
            if row["is_deleted"]:
                raise ConversationDeletedError(f"Conversation {thread_id} has been deleted")
            if row["user_id"] != user_id:
                raise ConversationNotFoundError(f"Conversation {thread_id} not found")
            return False

        now = utc_now_iso()
        title = make_title(messages)
        await self.connection.execute(
            "INSERT INTO conversations (id, user_id, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (thread_id, user_id, title, now, now),
        )
        await self.connection.commit()
        logger.info(f"Created conversation {thread_id} for user {user_id}: '{title}'")
        return True

    async def bring_conversation_to_top(self, thread_id: str):
        """Bump updated_at so the thread sorts first in the sidebar"""
        await self.connection.execute(
            "UPDATE conversations SET updated_at = ? WHERE id = ?",
            (utc_now_iso(), thread_id),
        )
        await self.connection.commit()

    async def list_conversations(self, user_id: str, search: Optional[str] = None) -> List[Dict[str, Any]]:
        """Live conversations of a user, most recently active first"""
        query = "SELECT id, title, created_at, updated_at FROM conversations WHERE user_id = ? AND is_deleted = 0"
        params: List[Any] = [user_id]
        if search:
            query += " AND title LIKE ?"
            params.append(f"%{search}%")
        query += " ORDER BY updated_at DESC"

        cursor = await self.connection.execute(query, params)
        rows = await cursor.fetchall()
        return [
            {
                "id": row["id"],
                "title": row["title"],
                "createdAt": row["created_at"],
                "updatedAt": row["updated_at"],
            }
            for row in rows
        ]

    async def soft_delete_conversation(self, user_id: str, thread_id: str):
        """
        Mark a conversation deleted. Messages are kept.

        Raises:
            ConversationNotFoundError: Unknown, foreign or already deleted thread
        """
        cursor = await self.connection.execute(
            "UPDATE conversations SET is_deleted = 1, updated_at = ? "
            "WHERE id = ? AND user_id = ? AND is_deleted = 0",
            (utc_now_iso(), thread_id, user_id),
        )
        await self.connection.commit()
        if cursor.rowcount == 0:
            raise ConversationNotFoundError(f"Conversation {thread_id} not found")
        logger.info(f"Soft-deleted conversation {thread_id}")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def append_message(self, thread_id: str, role: str, content: str):
        """Insert one message row"""
        await self.connection.execute(
            "INSERT INTO messages (thread_id, role, content, created_at) VALUES (?, ?, ?, ?)",
            (thread_id, role, content, utc_now_iso()),
        )
        await self.connection.commit()

    async def save_user_message(self, thread_id: str, content: str):
        await self.append_message(thread_id, "user", content)
        logger.debug(f"Saved user message to {thread_id} ({len(content)} chars)")

    async def save_assistant_message(self, thread_id: str, content: str):
        await self.append_message(thread_id, "assistant", content)
        logger.debug(f"Saved assistant message to {thread_id} ({len(content)} chars)")

    async def count_user_messages(self, thread_id: str) -> int:
        cursor = await self.connection.execute(
            "SELECT COUNT(*) FROM messages WHERE thread_id = ? AND role = 'user'", (thread_id,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def get_messages(self, thread_id: str, user_id: str) -> List[Dict[str, Any]]:
        """
        Stored messages of a live thread, oldest first.

        Raises:
            ConversationNotFoundError: Unknown, foreign or soft-deleted thread
        """
        row = await self._get_conversation_row(thread_id)
        if row is None or row["is_deleted"] or row["user_id"] != user_id:
            raise ConversationNotFoundError(f"Conversation {thread_id} not found")

        cursor = await self.connection.execute(
            "SELECT id, role, content, created_at FROM messages WHERE thread_id = ? ORDER BY id",
            (thread_id,),
        )
        rows = await cursor.fetchall()
        return [
            {
                "id": str(r["id"]),
                "role": r["role"],
                "content": r["content"],
                "createdAt": r["created_at"],
            }
            for r in rows
        ]

    def truncate_messages(self, messages: List[Dict[str, str]], max_messages: Optional[int] = None) -> List[Dict[str, str]]:
        """
        Truncate messages to max_messages (keeps most recent)

        Args:
            messages: List of messages to truncate
            max_messages: Maximum number of messages to keep (defaults to settings.max_conversation_messages)

        Returns:
            Truncated list of messages (most recent N messages)
        """
        max_messages = max_messages or settings.max_conversation_messages
        if not messages:
            return messages
        return list(messages[-max_messages:]) if len(messages) > max_messages else list(messages)

