"""
Model gateway - the two model operations the orchestrator consumes.

- classify(system_prompt, messages, schema): one structured-output call
- stream_complete(system_prompt, messages): async sequence of text chunks

The gateway owns the conversion from stored (role, content) pairs to
LangChain messages so the orchestrator never touches provider types.
"""

from typing import AsyncIterator, Dict, List, Optional, Sequence, Type

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from loguru import logger
from pydantic import BaseModel

from src.config.settings import settings
from src.llm.client import create_llm
from src.llm.response_utils import extract_text_from_response
from src.utils.errors import ClassificationError


def to_langchain_messages(messages: Sequence[Dict[str, str]]) -> List[BaseMessage]:
    """
    Convert chat history to LangChain messages.

    ``user`` becomes HumanMessage and ``assistant`` becomes AIMessage. System
    entries from the client are dropped (the persona is added by the gateway).

    Raises:
        ValueError: For any other role
    """
    converted: List[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content", "")
        if role == "user":
            converted.append(HumanMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        elif role == "system":
            continue
        else:
            raise ValueError(f"Unsupported message role: {role}")
    return converted


class ModelGateway:
    """
    LangChain-backed gateway for one turn.

    Two models are kept: a deterministic one for classification and one at
    the orchestrator temperature for streamed prose.
    """

    def __init__(self, chat_llm: BaseChatModel, classifier_llm: Optional[BaseChatModel] = None):
        self.chat_llm = chat_llm
        self.classifier_llm = classifier_llm or chat_llm

    @classmethod
    def for_request(cls, model: Optional[str], api_key: Optional[str]) -> "ModelGateway":
        """Build the gateway for the caller's model id and API key."""
        chat_llm = create_llm(
            model=model,
            api_key=api_key,
            temperature=settings.orchestrator_temperature,
            max_completion_tokens=settings.max_output_tokens,
        )
        classifier_llm = create_llm(
            model=model,
            api_key=api_key,
            temperature=settings.classifier_temperature,
            max_completion_tokens=settings.max_output_tokens,
        )
        return cls(chat_llm, classifier_llm)

    async def classify(
        self,
        system_prompt: str,
        messages: Sequence[Dict[str, str]],
        schema: Type[BaseModel],
    ) -> BaseModel:
        """
        Single structured-generation call. No retries at this layer.

        Raises:
            ClassificationError: When the model returns no object
        """
        structured_llm = self.classifier_llm.with_structured_output(schema)
        prompt = [SystemMessage(content=system_prompt), *to_langchain_messages(messages)]

        result = await structured_llm.ainvoke(prompt)
        if result is None:
            raise ClassificationError("Classifier returned no decision")
        if isinstance(result, dict):
            result = schema.model_validate(result)
        return result

    async def stream_complete(
        self,
        system_prompt: str,
        messages: Sequence[Dict[str, str]],
    ) -> AsyncIterator[str]:
        """Stream text chunks of a completion under the given persona."""
        prompt = [SystemMessage(content=system_prompt), *to_langchain_messages(messages)]

        chunk_count = 0
        async for chunk in self.chat_llm.astream(prompt):
            text = extract_text_from_response(chunk)
            if text:
                chunk_count += 1
                yield text
        logger.debug(f"Model stream finished ({chunk_count} chunks)")
