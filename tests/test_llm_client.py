"""
Tests for the LLM client factory
"""

import unittest

import httpx
import pytest

from src.llm.client import create_llm, validate_ollama_model
from src.utils.errors import MissingApiKeyError


def tags_client(names):
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": name} for name in names]})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def unreachable_client():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCreateLlm(unittest.TestCase):

    def test_gemini_without_key_raises_typed_error(self):
        with self.assertRaises(MissingApiKeyError) as raised:
            create_llm(model="gemini-2.5-flash", api_key=None)
        self.assertEqual(raised.exception.provider, "Gemini")


class TestValidateOllamaModel:

    async def test_pulled_model_with_tag_passes(self):
        async with tags_client(["llama3:latest", "mistral:7b"]) as client:
            await validate_ollama_model("llama3", client=client)

    async def test_missing_model_raises(self):
        async with tags_client(["mistral:7b"]) as client:
            with pytest.raises(ValueError, match="ollama pull llama3"):
                await validate_ollama_model("llama3", client=client)

    async def test_unreachable_server_raises_connection_error(self):
        async with unreachable_client() as client:
            with pytest.raises(ConnectionError):
                await validate_ollama_model("llama3", client=client)
