"""
LLM layer - Client factory, model gateway, and response utilities
"""

from src.llm.client import create_llm, uses_ollama, validate_ollama_model
from src.llm.gateway import ModelGateway, to_langchain_messages
from src.llm.response_utils import extract_text_from_response

__all__ = [
    "create_llm",
    "uses_ollama",
    "validate_ollama_model",
    "ModelGateway",
    "to_langchain_messages",
    "extract_text_from_response",
]
