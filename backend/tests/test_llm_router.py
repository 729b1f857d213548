"""
Tests for LLM provider routing and fallback.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.config import Settings
from app.services.llm_router import LLMRouter, LLMRouterError, ProviderError


def _router(anthropic_key="sk-ant", openai_key="sk-oai"):
    return LLMRouter(Settings(DEBUG=True, ANTHROPIC_API_KEY=anthropic_key, OPENAI_API_KEY=openai_key))


def _anthropic_response(text):
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    response.usage.input_tokens = 1000
    response.usage.output_tokens = 200
    return response


def _openai_response(text):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=text))]
    response.usage.prompt_tokens = 1000
    response.usage.completion_tokens = 200
    return response


class TestLLMRouter:

    @pytest.mark.asyncio
    async def test_primary_provider(self):
        router = _router()
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_anthropic_response('{"recommendations": []}'))
        router._anthropic_client = client

        result = await router.complete("personalized_ranking", "system", "user", tenant_id="t1")

        assert result["provider"] == "anthropic"
        assert result["content"] == '{"recommendations": []}'
        assert result["cost"] == pytest.approx(1000 / 1e6 * 3.0 + 200 / 1e6 * 15.0)

    @pytest.mark.asyncio
    async def test_falls_back_to_openai(self):
        router = _router()
        failing = MagicMock()
        failing.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        router._anthropic_client = failing
        fallback = MagicMock()
        fallback.chat.completions.create = AsyncMock(return_value=_openai_response("{}"))
        router._openai_client = fallback

        with patch("asyncio.sleep", new=AsyncMock()):
            result = await router.complete("similarity_ranking", "system", "user")

        assert result["provider"] == "openai"
        assert result["model"] == "gpt-4o-mini"
        # tenacity retries the primary once before moving on
        assert failing.messages.create.await_count == 2

    @pytest.mark.asyncio
    async def test_skips_providers_without_key(self):
        router = _router(anthropic_key=None)
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_openai_response("{}"))
        router._openai_client = client

        result = await router.complete("personalized_ranking", "system", "user")

        assert result["model"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_no_provider_configured(self):
        router = _router(anthropic_key=None, openai_key=None)

        with pytest.raises(LLMRouterError):
            await router.complete("personalized_ranking", "system", "user")

    @pytest.mark.asyncio
    async def test_all_providers_fail(self):
        router = _router()
        anthropic = MagicMock()
        anthropic.messages.create = AsyncMock(side_effect=RuntimeError("down"))
        openai = MagicMock()
        openai.chat.completions.create = AsyncMock(side_effect=RuntimeError("down"))
        router._anthropic_client = anthropic
        router._openai_client = openai

        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ProviderError):
                await router.complete("personalized_ranking", "system", "user")

    @pytest.mark.asyncio
    async def test_unknown_task(self):
        with pytest.raises(ValueError):
            await _router().complete("summarize", "system", "user")
