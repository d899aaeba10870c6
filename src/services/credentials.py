"""
Credential provider - per-user, per-capability access tokens.

Tokens are never handed out within the refresh margin (60s by default) of
their expiry. Near-expiry tokens are refreshed through Google OAuth; a failed
refresh disconnects the app so the user is asked to reconnect instead of
being served a stale token.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from loguru import logger

from src.config.constants import APP_CONFIGURATIONS
from src.config.settings import mask_secret, settings
from src.memory.permission_store import AppPermission, PermissionStore


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class GoogleTokenRefresher:
    """Exchanges a refresh token for a new access token via google-auth"""

    async def refresh(self, refresh_token: str) -> Tuple[str, Optional[datetime]]:
        """
        Returns:
            (access_token, expiry) - expiry is timezone-aware UTC or None
        """
        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=settings.google_token_uri,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        )
        # google-auth is blocking
        await asyncio.to_thread(creds.refresh, Request())
        expiry = _as_utc(creds.expiry) if creds.expiry else None
        return creds.token, expiry


class CredentialProvider:
    """
    Access token lookup with transparent refresh and revocation-on-failure.

    Refresh is serialized per (user, capability): the stored credential is
    re-read once the lock is held, so two turns never spend the same refresh
    token twice.
    """

    def __init__(
        self,
        store: PermissionStore,
        refresher: Optional[Any] = None,
        clock: Optional[Callable[[], datetime]] = None,
        refresh_margin_seconds: Optional[int] = None,
    ):
        self.store = store
        self.refresher = refresher or GoogleTokenRefresher()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        margin = refresh_margin_seconds if refresh_margin_seconds is not None else settings.token_refresh_margin_seconds
        self.refresh_margin = timedelta(seconds=margin)
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def _lock_for(self, user_id: str, capability: str) -> asyncio.Lock:
        key = (user_id, capability)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _needs_refresh(self, permission: AppPermission) -> bool:
        if permission.expires_at is None:
            return False
        return _as_utc(permission.expires_at) - _as_utc(self.clock()) <= self.refresh_margin

    @staticmethod
    def _usable(permission: Optional[AppPermission]) -> bool:
        return bool(permission and permission.is_connected and permission.access_token)

    async def has_permission(self, user_id: str, capability: str) -> bool:
        permission = await self.store.get(user_id, capability)
        return bool(permission and permission.is_connected)

    async def get_valid_access_token(self, user_id: str, capability: str) -> Optional[str]:
        """
        Valid access token for the capability, or None when unavailable.

        None is not an error: callers treat it as "capability unavailable"
        and ask the user to reconnect.
        """
        permission = await self.store.get(user_id, capability)
        if not self._usable(permission):
            return None

        if not self._needs_refresh(permission):
            try:
                await self.store.touch_last_used(user_id, capability)
            except Exception as e:
                logger.warning(f"Could not record last use of {capability} for {user_id}: {e}")
            return permission.access_token

        async with self._lock_for(user_id, capability):
            # Another turn may have refreshed while we waited
            permission = await self.store.get(user_id, capability)
            if not self._usable(permission):
                return None
            if not self._needs_refresh(permission):
                return permission.access_token

            if not permission.refresh_token:
                logger.warning(f"{capability} token for {user_id} is expiring and no refresh token is stored")
                return None

            logger.info(f"🔄 Refreshing {capability} token for {user_id}")
            try:
                token, expiry = await self.refresher.refresh(permission.refresh_token)
            except Exception as e:
                logger.error(f"❌ Token refresh failed for {capability} ({user_id}), disconnecting: {e}")
                await self.store.disconnect(user_id, capability)
                return None

            await self.store.update_tokens(user_id, capability, token, expiry)
            logger.info(f"✅ Refreshed {capability} token for {user_id}: {mask_secret(token)}")
            return token

    async def store_app_permission(
        self,
        user_id: str,
        app_id: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
        scopes: Optional[List[str]] = None,
    ):
        """Persist a credential obtained from the OAuth consent flow"""
        if app_id not in APP_CONFIGURATIONS:
            raise ValueError(f"Unknown app: {app_id}")

        expires_at = self.clock() + timedelta(seconds=expires_in) if expires_in else None
        await self.store.upsert(
            user_id=user_id,
            app_id=app_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            scopes=scopes if scopes is not None else APP_CONFIGURATIONS[app_id]["scopes"],
        )

    async def disconnect_app(self, user_id: str, app_id: str) -> bool:
        return await self.store.disconnect(user_id, app_id)

    async def get_available_apps(self, user_id: str) -> List[Dict[str, Any]]:
        """App catalogue merged with the user's connection status"""
        permissions = {p.app_id: p for p in await self.store.list_for_user(user_id)}
        apps = []
        for app_id, config in APP_CONFIGURATIONS.items():
            permission = permissions.get(app_id)
            apps.append({
                "id": app_id,
                "name": config["name"],
                "scopes": config["scopes"],
                "isConnected": bool(permission and permission.is_connected),
                "connectedAt": permission.connected_at if permission else None,
                "lastUsedAt": permission.last_used_at if permission else None,
            })
        return apps
