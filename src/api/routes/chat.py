"""
Chat streaming endpoint

The reply is streamed as plain text chunks. Errors before the first byte
become HTTP status codes; errors after that are prose inside the stream.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import PlainTextResponse, StreamingResponse
from loguru import logger

from src.agents.actions.registry import Organizer
from src.agents.orchestrator import ChatOrchestrator, ConversationTurn
from src.api.dependencies import UserIdentity, get_conversation_db, get_current_user, get_orchestrator
from src.api.schemas.chat import ChatRequest, MessagesResponse
from src.config.settings import mask_secret, settings
from src.memory.conversation_store import ConversationDatabase
from src.utils.errors import ConversationDeletedError, ConversationNotFoundError

router = APIRouter(prefix="/api/chat", tags=["chat"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
PLAIN_TEXT = "text/plain; charset=utf-8"


def message_limit_notice(limit: int) -> str:
    return (
        f"You have reached the maximum limit of {limit} messages in this chat. "
        f"Please start a new conversation to continue."
    )


@router.post("")
async def chat(
    request: ChatRequest,
    user: UserIdentity = Depends(get_current_user),
    x_model_api_key: Optional[str] = Header(default=None),
    conversation_db: ConversationDatabase = Depends(get_conversation_db),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """
    Stream the assistant reply for one chat turn

    **Headers:** `X-User-Id`, `X-User-Email`, `X-User-Name` (trusted, set by
    the auth layer) and `X-Model-Api-Key` (caller's model key).

    **Request:**
    ```json
    {
      "messages": [{"role": "user", "content": "Any unread mail from Alice?"}],
      "threadId": "3f1c2a9e-...",
      "model": "gemini-2.5-flash"
    }
    ```

    **Response:** `text/plain` chunked body with the live reply.
    """
    thread_id = request.thread_id
    model = request.model or settings.default_model
    logger.info(
        f"Chat request - thread={thread_id}, user={user.user_id}, model={model}, "
        f"key={mask_secret(x_model_api_key)}"
    )

    try:
        messages = [message.model_dump() for message in request.messages]

        try:
            await conversation_db.ensure_conversation(thread_id, user.user_id, messages)
        except (ConversationDeletedError, ConversationNotFoundError) as e:
            logger.warning(f"Rejected chat on thread {thread_id}: {e}")
            return PlainTextResponse("Conversation not found", status_code=404)

        limit = settings.max_user_messages_per_chat
        if await conversation_db.count_user_messages(thread_id) >= limit:
            notice = message_limit_notice(limit)
            await conversation_db.save_assistant_message(thread_id, notice)
            logger.info(f"Thread {thread_id} reached the {limit} message limit")
            return PlainTextResponse(notice, media_type=PLAIN_TEXT)

        await conversation_db.save_user_message(thread_id, messages[-1]["content"])
        await conversation_db.bring_conversation_to_top(thread_id)

        turn = ConversationTurn(
            thread_id=thread_id,
            user_id=user.user_id,
            messages=messages,
            model=model,
            api_key=x_model_api_key,
            organizer=Organizer(display_name=user.name, email=user.email),
            user_name=user.name,
        )
    except Exception:
        logger.exception("Chat API error")
        return PlainTextResponse("Internal Server Error", status_code=500)

    return StreamingResponse(
        orchestrator.stream_turn(turn),
        media_type=PLAIN_TEXT,
        headers=STREAM_HEADERS,
    )


@router.get("/{thread_id}", response_model=MessagesResponse, response_model_by_alias=True)
async def get_chat_messages(
    thread_id: str,
    user: UserIdentity = Depends(get_current_user),
    conversation_db: ConversationDatabase = Depends(get_conversation_db),
):
    """Stored messages of a live thread, oldest first"""
    try:
        messages = await conversation_db.get_messages(thread_id, user.user_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"success": True, "messages": messages}
