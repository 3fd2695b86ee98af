"""Tests for selector provider reply parsing and provider construction."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from healing_engine.core.config import Settings
from healing_engine.services import llm_client
from healing_engine.services.llm_client import (
    LLMProviderError, LocalSelectorProvider, OnlineSelectorProvider,
    create_selector_provider, parse_selector_response
)


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestParseSelectorResponse:

    def test_well_formed_reply(self):
        response = parse_selector_response(
            '{"selectors": ["#a", " #b ", "#a", "", 3], "reasoning": "ids", "confidence": 0.8}')
        assert response.selectors == ["#a", "#b"]
        assert response.reasoning == "ids"
        assert response.confidence == 0.8

    def test_missing_confidence_defaults(self):
        response = parse_selector_response('{"selectors": ["#a"]}')
        assert response.confidence == 0.5
        assert response.reasoning == ""

    def test_confidence_is_clamped(self):
        assert parse_selector_response('{"selectors": [], "confidence": 7}').confidence == 1.0
        assert parse_selector_response('{"selectors": [], "confidence": -2}').confidence == 0.0

    @pytest.mark.parametrize("content", [
        None,
        "",
        "not json at all",
        "[1, 2]",
        '{"reasoning": "no selectors key"}',
        '{"selectors": "#a"}',
    ])
    def test_unusable_reply_never_raises(self, content):
        response = parse_selector_response(content)
        assert response.selectors == []
        assert response.confidence == 0.0
        assert response.reasoning.startswith("Failed to parse response")

    def test_extracts_json_from_free_text(self):
        content = 'Sure! Here you go:\n{"selectors": ["text=Login"], "confidence": 0.9}\nGood luck.'
        assert parse_selector_response(content, extract=True).selectors == ["text=Login"]

    def test_extract_without_json(self):
        response = parse_selector_response("I cannot help with that", extract=True)
        assert response.selectors == []
        assert "no JSON object found" in response.reasoning


class TestOnlineSelectorProvider:

    @pytest.mark.asyncio
    async def test_generate_selectors(self):
        provider = OnlineSelectorProvider("gemini/gemini-2.5-flash", api_key="k", timeout=5)
        with patch("litellm.acompletion", new_callable=AsyncMock,
                   return_value=_completion('{"selectors": ["#ok"], "confidence": 0.9}')) as mock_call:
            response = await provider.generate_selectors("prompt")

        assert response.selectors == ["#ok"]
        kwargs = mock_call.call_args.kwargs
        assert kwargs["model"] == "gemini/gemini-2.5-flash"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][1] == {"role": "user", "content": "prompt"}

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self):
        provider = OnlineSelectorProvider("gemini/gemini-2.5-flash")
        with patch("litellm.acompletion", new_callable=AsyncMock,
                   side_effect=ConnectionError("refused")):
            with pytest.raises(LLMProviderError, match="refused"):
                await provider.generate_selectors("prompt")

    @pytest.mark.asyncio
    async def test_empty_content_is_an_error(self):
        provider = OnlineSelectorProvider("gemini/gemini-2.5-flash")
        with patch("litellm.acompletion", new_callable=AsyncMock, return_value=_completion(None)):
            with pytest.raises(LLMProviderError, match="Empty response"):
                await provider.generate_selectors("prompt")


class TestLocalSelectorProvider:

    @pytest.mark.asyncio
    async def test_generate_selectors_extracts_json(self):
        provider = LocalSelectorProvider("llama3", timeout=5)
        with patch.object(type(provider.llm), "ainvoke", new_callable=AsyncMock,
                          return_value='Answer: {"selectors": ["#name"], "reasoning": "id"}'):
            response = await provider.generate_selectors("prompt")
        assert response.selectors == ["#name"]

    @pytest.mark.asyncio
    async def test_connection_error_is_wrapped(self):
        provider = LocalSelectorProvider("llama3", base_url="http://localhost:1")
        with patch.object(type(provider.llm), "ainvoke", new_callable=AsyncMock,
                          side_effect=OSError("connection refused")):
            with pytest.raises(LLMProviderError, match="localhost:1"):
                await provider.generate_selectors("prompt")


class TestProviderFactory:

    def test_online_provider_uses_gemini_key(self):
        config = Settings(MODEL_PROVIDER="online", ONLINE_MODEL="gemini/gemini-2.5-flash",
                          GEMINI_API_KEY="gem", OPENAI_API_KEY="oai")
        provider = create_selector_provider(config)
        assert isinstance(provider, OnlineSelectorProvider)
        assert provider.api_key == "gem"

    def test_openai_model_uses_openai_key(self):
        config = Settings(MODEL_PROVIDER="cloud", ONLINE_MODEL="gpt-4o-mini",
                          GEMINI_API_KEY="gem", OPENAI_API_KEY="oai")
        assert create_selector_provider(config).api_key == "oai"

    def test_local_provider(self):
        config = Settings(MODEL_PROVIDER="ollama", LOCAL_MODEL="mistral", LLM_TIMEOUT=12)
        provider = create_selector_provider(config)
        assert isinstance(provider, LocalSelectorProvider)
        assert provider.model == "mistral"
        assert provider.timeout == 12

    def test_provider_is_cached_until_reset(self):
        llm_client.reset_selector_provider()
        config = Settings(MODEL_PROVIDER="online")
        try:
            first = llm_client.get_selector_provider(config)
            assert llm_client.get_selector_provider() is first
            llm_client.reset_selector_provider()
            assert llm_client.get_selector_provider(config) is not first
        finally:
            llm_client.reset_selector_provider()

    def test_invalid_provider_rejected(self):
        with pytest.raises(ValueError):
            Settings(MODEL_PROVIDER="carrier-pigeon")
