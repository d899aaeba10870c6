"""
LLM response utilities for handling multi-format model outputs.

Streamed chunks arrive either as plain strings (most OpenAI models) or as
lists of content blocks (Gemini, reasoning models). Reasoning blocks are
never forwarded to the user.
"""

from typing import Any
from loguru import logger


def extract_text_from_response(response: Any) -> str:
    """
    Extract user-visible text from an LLM response or streamed chunk.

    Supports:
    - Simple string: "text here"
    - Structured blocks: [{'type': 'reasoning', ...}, {'type': 'text', 'text': '...'}]
    - LangChain AIMessage / AIMessageChunk with content attribute

    Args:
        response: LLM response (AIMessage, AIMessageChunk, str, or list)

    Returns:
        Extracted text content as string ("" for empty or reasoning-only chunks)

    Example:
        chunk.content = "Sure, I can"
        extract_text_from_response(chunk) -> "Sure, I can"

        chunk.content = [
            {'type': 'reasoning', 'text': '...'},
            {'type': 'text', 'text': ' help with that.'}
        ]
        extract_text_from_response(chunk) -> " help with that."
    """
    content = response.content if hasattr(response, "content") else response

    if not content:
        return ""

    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type") == "text" and "text" in block:
                    text_parts.append(block["text"])
                # Fallback: any non-reasoning dict with 'text' key
                elif "text" in block and block.get("type") != "reasoning":
                    text_parts.append(block["text"])
            elif isinstance(block, str):
                text_parts.append(block)

        if not text_parts:
            logger.debug(f"No text blocks in structured chunk: {str(content)[:200]}")
        return "".join(text_parts)

    return str(content)
