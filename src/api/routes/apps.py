"""
Connected apps (capabilities) endpoints

The OAuth consent flow lives in the upstream auth layer; it hands the
granted tokens to /connect.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from src.api.dependencies import UserIdentity, get_credentials, get_current_user
from src.api.schemas.apps import AppsResponse, AppStatusResponse
from src.config.constants import APP_CONFIGURATIONS
from src.services.credentials import CredentialProvider

router = APIRouter(prefix="/api/apps", tags=["apps"])


class ConnectAppRequest(BaseModel):
    """Tokens granted by the consent flow"""
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    expires_in: Optional[int] = Field(default=None, alias="expiresIn", ge=1)
    scopes: Optional[List[str]] = None


def _require_known_app(app_id: str):
    if app_id not in APP_CONFIGURATIONS:
        raise HTTPException(status_code=404, detail=f"Unknown app: {app_id}")


@router.get("", response_model=AppsResponse, response_model_by_alias=True)
async def list_apps(
    user: UserIdentity = Depends(get_current_user),
    credentials: CredentialProvider = Depends(get_credentials),
):
    """Capability catalogue with the caller's connection status"""
    return {"apps": await credentials.get_available_apps(user.user_id)}


@router.post("/{app_id}/connect", response_model=AppStatusResponse, response_model_by_alias=True)
async def connect_app(
    app_id: str,
    body: ConnectAppRequest,
    user: UserIdentity = Depends(get_current_user),
    credentials: CredentialProvider = Depends(get_credentials),
):
    """Store a freshly granted credential for the caller"""
    _require_known_app(app_id)
    await credentials.store_app_permission(
        user_id=user.user_id,
        app_id=app_id,
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        expires_in=body.expires_in,
        scopes=body.scopes,
    )
    logger.info(f"🔗 {user.user_id} connected {app_id}")
    return AppStatusResponse(app_id=app_id)


@router.post("/{app_id}/disconnect", response_model=AppStatusResponse, response_model_by_alias=True)
async def disconnect_app(
    app_id: str,
    user: UserIdentity = Depends(get_current_user),
    credentials: CredentialProvider = Depends(get_credentials),
):
    """Clear the caller's stored tokens for an app"""
    _require_known_app(app_id)
    disconnected = await credentials.disconnect_app(user.user_id, app_id)
    logger.info(f"{user.user_id} disconnected {app_id} (was stored: {disconnected})")
    return AppStatusResponse(app_id=app_id)
