"""
Chat request/response models
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChatMessage(BaseModel):
    """One message of the conversation history sent by the client"""
    role: Literal["user", "assistant", "system"]
    content: str = Field(default="", max_length=20000)


class ChatRequest(BaseModel):
    """
    Chat turn request

    The full visible history is sent on every turn; the last message is the
    new user submission.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "messages": [{"role": "user", "content": "Schedule a call with bob@example.com tomorrow at 3pm"}],
                    "threadId": "3f1c2a9e-8a47-4b1e-9a55-0d7e6c1f2b10",
                    "model": "gemini-2.5-flash",
                }
            ]
        },
    )

    messages: List[ChatMessage] = Field(..., min_length=1)
    thread_id: str = Field(..., alias="threadId", min_length=1, max_length=128)
    model: Optional[str] = Field(default=None, description="Model id from /api/models")

    @model_validator(mode="after")
    def _last_message_from_user(self) -> "ChatRequest":
        if self.messages[-1].role != "user":
            raise ValueError("The last message must have role 'user'")
        return self


class StoredMessage(BaseModel):
    id: str
    role: str
    content: str
    created_at: str = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class MessagesResponse(BaseModel):
    success: bool = True
    messages: List[StoredMessage]
