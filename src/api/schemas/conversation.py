"""
Conversation list models
"""

from pydantic import BaseModel, ConfigDict, Field


class ConversationSummary(BaseModel):
    """Sidebar entry for one live conversation"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")


class DeleteConversationResponse(BaseModel):
    success: bool = True
    id: str
