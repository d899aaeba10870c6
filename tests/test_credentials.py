"""
Tests for the credential provider (token refresh and revocation)
"""

import asyncio

import pytest

from src.services.credentials import CredentialProvider
from tests.fakes import NOW, USER_ID, FakeRefresher, connect


class TestGetValidAccessToken:

    async def test_unknown_capability_returns_none(self, credentials):
        assert await credentials.get_valid_access_token(USER_ID, "gmail") is None

    async def test_token_outside_margin_is_returned_without_refresh(self, credentials, permissions, refresher):
        await connect(permissions, "gmail", expires_in_seconds=61)

        assert await credentials.get_valid_access_token(USER_ID, "gmail") == "access-1"
        assert refresher.calls == []

    async def test_token_inside_margin_is_refreshed(self, credentials, permissions, refresher):
        await connect(permissions, "gmail", expires_in_seconds=59)

        assert await credentials.get_valid_access_token(USER_ID, "gmail") == "refreshed-token"
        assert refresher.calls == ["refresh-1"]

        stored = await permissions.get(USER_ID, "gmail")
        assert stored.access_token == "refreshed-token"

    async def test_token_without_expiry_is_never_refreshed(self, credentials, permissions, refresher):
        await connect(permissions, "docs", expires_in_seconds=None)

        assert await credentials.get_valid_access_token(USER_ID, "docs") == "access-1"
        assert refresher.calls == []

    async def test_failed_refresh_disconnects(self, credentials, permissions, refresher):
        await connect(permissions, "calendar", expires_in_seconds=10)
        refresher.error = RuntimeError("invalid_grant")

        assert await credentials.get_valid_access_token(USER_ID, "calendar") is None

        stored = await permissions.get(USER_ID, "calendar")
        assert stored.is_connected is False
        assert stored.access_token is None
        assert await credentials.has_permission(USER_ID, "calendar") is False

    async def test_expiring_token_without_refresh_token_stays_connected(self, credentials, permissions, refresher):
        await connect(permissions, "calendar", expires_in_seconds=10, refresh_token=None)

        assert await credentials.get_valid_access_token(USER_ID, "calendar") is None
        assert refresher.calls == []
        assert await credentials.has_permission(USER_ID, "calendar") is True

    async def test_concurrent_turns_refresh_once(self, permissions):
        await connect(permissions, "gmail", expires_in_seconds=5)

        class SlowRefresher(FakeRefresher):
            async def refresh(self, refresh_token):
                await asyncio.sleep(0.01)
                return await super().refresh(refresh_token)

        refresher = SlowRefresher()
        provider = CredentialProvider(permissions, refresher=refresher, clock=lambda: NOW)

        tokens = await asyncio.gather(
            provider.get_valid_access_token(USER_ID, "gmail"),
            provider.get_valid_access_token(USER_ID, "gmail"),
        )

        assert tokens == ["refreshed-token", "refreshed-token"]
        assert refresher.calls == ["refresh-1"]


class TestAppManagement:

    async def test_store_and_list_apps(self, credentials):
        await credentials.store_app_permission(USER_ID, "gmail", "tok", refresh_token="r", expires_in=3600)

        apps = {app["id"]: app for app in await credentials.get_available_apps(USER_ID)}

        assert set(apps) == {"gmail", "calendar", "meet", "docs"}
        assert apps["gmail"]["isConnected"] is True
        assert apps["gmail"]["name"] == "Gmail"
        assert apps["gmail"]["scopes"]
        assert apps["docs"]["isConnected"] is False

    async def test_store_unknown_app_rejected(self, credentials):
        with pytest.raises(ValueError):
            await credentials.store_app_permission(USER_ID, "dropbox", "tok")

    async def test_reconnect_keeps_previous_refresh_token(self, credentials, permissions):
        await credentials.store_app_permission(USER_ID, "gmail", "tok-1", refresh_token="r-1", expires_in=3600)
        await credentials.store_app_permission(USER_ID, "gmail", "tok-2", expires_in=3600)

        stored = await permissions.get(USER_ID, "gmail")
        assert stored.access_token == "tok-2"
        assert stored.refresh_token == "r-1"

    async def test_disconnect_app(self, credentials):
        await credentials.store_app_permission(USER_ID, "docs", "tok", expires_in=3600)

        assert await credentials.disconnect_app(USER_ID, "docs") is True
        assert await credentials.get_valid_access_token(USER_ID, "docs") is None
