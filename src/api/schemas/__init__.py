"""
API schemas for request/response models
"""

from src.api.schemas.apps import AppInfo, AppsResponse, AppStatusResponse, ModelInfo, ModelsResponse
from src.api.schemas.chat import ChatMessage, ChatRequest, MessagesResponse, StoredMessage
from src.api.schemas.conversation import ConversationSummary, DeleteConversationResponse
from src.api.schemas.system import HealthResponse

__all__ = [
    "AppInfo",
    "AppsResponse",
    "ChatMessage",
    "ChatRequest",
    "ConversationSummary",
    "DeleteConversationResponse",
    "AppStatusResponse",
    "HealthResponse",
    "MessagesResponse",
    "ModelInfo",
    "ModelsResponse",
    "StoredMessage",
]
