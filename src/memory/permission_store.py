"""
Per-user app permission storage.

One row per (user, app) holding the OAuth access/refresh tokens, their
expiry and the connection status. Shares the ConversationDatabase
connection.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from loguru import logger

from src.memory.conversation_store import ConversationDatabase, utc_now_iso


@dataclass
class AppPermission:
    """Stored credential for one user and one capability"""
    user_id: str
    app_id: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = field(default_factory=list)
    is_connected: bool = False
    connected_at: Optional[str] = None
    last_used_at: Optional[str] = None


def _parse_expiry(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class PermissionStore:
    """CRUD over the app_permissions table"""

    def __init__(self, db: ConversationDatabase):
        self.db = db

    def _row_to_permission(self, row) -> AppPermission:
        return AppPermission(
            user_id=row["user_id"],
            app_id=row["app_id"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expires_at=_parse_expiry(row["expires_at"]),
            scopes=json.loads(row["scopes"] or "[]"),
            is_connected=bool(row["is_connected"]),
            connected_at=row["connected_at"],
            last_used_at=row["last_used_at"],
        )

    async def get(self, user_id: str, app_id: str) -> Optional[AppPermission]:
        cursor = await self.db.connection.execute(
            "SELECT * FROM app_permissions WHERE user_id = ? AND app_id = ?",
            (user_id, app_id),
        )
        row = await cursor.fetchone()
        return self._row_to_permission(row) if row else None

    async def list_for_user(self, user_id: str) -> List[AppPermission]:
        cursor = await self.db.connection.execute(
            "SELECT * FROM app_permissions WHERE user_id = ? ORDER BY app_id", (user_id,)
        )
        return [self._row_to_permission(row) for row in await cursor.fetchall()]

    async def upsert(
        self,
        user_id: str,
        app_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
        scopes: List[str],
    ):
        """Store a freshly granted credential and mark the app connected"""
        now = utc_now_iso()
        await self.db.connection.execute(
            """
            INSERT INTO app_permissions
                (user_id, app_id, access_token, refresh_token, expires_at, scopes, is_connected, connected_at, last_used_at)
            VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT(user_id, app_id) DO UPDATE SET
                access_token = excluded.access_token,
                refresh_token = COALESCE(excluded.refresh_token, app_permissions.refresh_token),
                expires_at = excluded.expires_at,
                scopes = excluded.scopes,
                is_connected = 1,
                connected_at = excluded.connected_at,
                last_used_at = excluded.last_used_at
            """,
            (
                user_id,
                app_id,
                access_token,
                refresh_token,
                expires_at.isoformat() if expires_at else None,
                json.dumps(scopes),
                now,
                now,
            ),
        )
        await self.db.connection.commit()
        logger.info(f"Stored {app_id} permission for user {user_id}")

    async def update_tokens(self, user_id: str, app_id: str, access_token: str, expires_at: Optional[datetime]):
        """Persist a refreshed access token"""
        await self.db.connection.execute(
            "UPDATE app_permissions SET access_token = ?, expires_at = ?, last_used_at = ? "
            "WHERE user_id = ? AND app_id = ?",
            (access_token, expires_at.isoformat() if expires_at else None, utc_now_iso(), user_id, app_id),
        )
        await self.db.connection.commit()

    async def touch_last_used(self, user_id: str, app_id: str):
        await self.db.connection.execute(
            "UPDATE app_permissions SET last_used_at = ? WHERE user_id = ? AND app_id = ?",
            (utc_now_iso(), user_id, app_id),
        )
        await self.db.connection.commit()

    async def disconnect(self, user_id: str, app_id: str) -> bool:
        """Mark the app disconnected and clear stored tokens"""
        cursor = await self.db.connection.execute(
            "UPDATE app_permissions SET is_connected = 0, access_token = NULL, refresh_token = NULL, "
            "expires_at = NULL WHERE user_id = ? AND app_id = ?",
            (user_id, app_id),
        )
        await self.db.connection.commit()
        if cursor.rowcount:
            logger.info(f"Disconnected {app_id} for user {user_id}")
        return cursor.rowcount > 0
