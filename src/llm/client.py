"""
LLM client factory

Creates chat model instances for a turn from the caller's model id and API key.
"""

from typing import Optional

import httpx
from loguru import logger

from src.config.constants import get_provider_for_model
from src.config.settings import mask_secret, settings
from src.utils.errors import MissingApiKeyError


def uses_ollama() -> bool:
    return settings.llm_provider.lower() == "ollama"


async def validate_ollama_model(model: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
    """
    Raise when the Ollama server is unreachable or does not have the model pulled.

    Called once at startup when LLM_PROVIDER=ollama, never per request.
    """
    model = model or settings.ollama_model
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=3.0)
    try:
        response = await client.get(f"{settings.ollama_base_url}/api/tags")
        response.raise_for_status()
        models_data = response.json()
        available_models = [m.get("name", "").split(":")[0] for m in models_data.get("models", [])]
    except httpx.RequestError as e:
        error_msg = (
            f"Could not connect to Ollama server at {settings.ollama_base_url}. "
            f"Make sure Ollama is running. Error: {e}"
        )
        logger.error(f"❌ {error_msg}")
        raise ConnectionError(error_msg) from e
    finally:
        if owns_client:
            await client.aclose()

    # Handle both "llama3" and "llama3:latest"
    if model.split(":")[0] not in available_models:
        error_msg = (
            f"Ollama model '{model}' is not available on the server. "
            f"Available models: {', '.join(available_models) if available_models else 'None'}. "
            f"To install: ollama pull {model}"
        )
        logger.error(f"❌ {error_msg}")
        raise ValueError(error_msg)
    logger.info(f"✅ Ollama model '{model}' is available at {settings.ollama_base_url}")


def _resolve_provider(model: str) -> str:
    if uses_ollama():
        return "ollama"
    provider = get_provider_for_model(model)
    if provider:
        return provider
    return "gemini" if model.startswith("gemini") else "openai"


def create_llm(
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    temperature: Optional[float] = None,
    max_completion_tokens: Optional[int] = None,
):
    """
    Factory function to create a LangChain chat model for one request.

    Args:
        model: Model id chosen by the caller (defaults to settings.default_model)
        api_key: Caller-supplied provider key (falls back to OPENAI_API_KEY for OpenAI)
        temperature: Generation temperature (defaults to settings.orchestrator_temperature)
        max_completion_tokens: Max tokens for completion (defaults to settings.max_output_tokens)

    Returns:
        LangChain ChatModel instance (ChatGoogleGenerativeAI, ChatOpenAI or ChatOllama)

    Raises:
        MissingApiKeyError: Gemini or OpenAI model requested without a key
    """
    model = model or settings.default_model
    provider = _resolve_provider(model)
    max_tokens = max_completion_tokens or settings.max_output_tokens
    temperature = temperature if temperature is not None else settings.orchestrator_temperature

    logger.debug(f"Creating LLM | provider={provider} | model={model} | key={mask_secret(api_key)}")

    if provider == "gemini":
        from langchain_google_genai import ChatGoogleGenerativeAI

        if not api_key:
            raise MissingApiKeyError("Gemini")

        return ChatGoogleGenerativeAI(
            model=model,
            google_api_key=api_key,
            temperature=temperature,
            max_output_tokens=max_tokens,
        )

    elif provider == "openai":
        from langchain_openai import ChatOpenAI

        key = api_key or settings.openai_api_key
        if not key:
            raise MissingApiKeyError("OpenAI")

        return ChatOpenAI(
            model=model,
            api_key=key,
            temperature=temperature,
            max_completion_tokens=max_tokens,
        )

    elif provider == "ollama":
        from langchain_community.chat_models import ChatOllama

        model_to_use = settings.ollama_model

        return ChatOllama(
            model=model_to_use,
            base_url=settings.ollama_base_url,
            temperature=temperature,
            num_predict=max_tokens,  # Ollama uses num_predict instead of max_completion_tokens
        )

    raise ValueError(f"Unsupported LLM provider: {provider}. Supported: 'gemini', 'openai', 'ollama'")
