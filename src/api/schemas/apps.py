"""
App (capability) and model catalogue models
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AppInfo(BaseModel):
    """A connectable capability and the caller's connection status"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    scopes: List[str]
    is_connected: bool = Field(alias="isConnected")
    connected_at: Optional[str] = Field(default=None, alias="connectedAt")
    last_used_at: Optional[str] = Field(default=None, alias="lastUsedAt")


class AppsResponse(BaseModel):
    apps: List[AppInfo]


class AppStatusResponse(BaseModel):
    success: bool = True
    app_id: str = Field(alias="appId")

    model_config = ConfigDict(populate_by_name=True)


class ModelInfo(BaseModel):
    id: str
    name: str
    provider: str


class ModelsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    models: List[ModelInfo]
    default_model: str = Field(alias="defaultModel")
