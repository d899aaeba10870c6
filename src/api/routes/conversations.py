"""
Conversation sidebar endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from src.api.dependencies import UserIdentity, get_conversation_db, get_current_user
from src.api.schemas.conversation import ConversationSummary, DeleteConversationResponse
from src.memory.conversation_store import ConversationDatabase
from src.utils.errors import ConversationNotFoundError

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("", response_model=List[ConversationSummary], response_model_by_alias=True)
async def list_conversations(
    search: Optional[str] = Query(default=None, max_length=200),
    user: UserIdentity = Depends(get_current_user),
    conversation_db: ConversationDatabase = Depends(get_conversation_db),
):
    """Live conversations of the caller, most recently active first"""
    return await conversation_db.list_conversations(user.user_id, search)


@router.delete("/{thread_id}", response_model=DeleteConversationResponse)
async def delete_conversation(
    thread_id: str,
    user: UserIdentity = Depends(get_current_user),
    conversation_db: ConversationDatabase = Depends(get_conversation_db),
):
    """Soft-delete a conversation. Its messages are kept but no longer served."""
    try:
        await conversation_db.soft_delete_conversation(user.user_id, thread_id)
    except ConversationNotFoundError:
        logger.warning(f"Delete of unknown conversation {thread_id} by {user.user_id}")
        raise HTTPException(status_code=404, detail="Conversation not found")
    return DeleteConversationResponse(id=thread_id)
