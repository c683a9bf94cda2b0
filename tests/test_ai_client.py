"""Tests for model resolution and provider routing in the AI client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from promptpool.config import Settings
from promptpool.services.ai_client import AIClient, AIProvider


def _client(**overrides):
    return AIClient(Settings(**overrides))


class TestModelResolution:

    def test_use_case_overrides(self):
        client = _client(model_name="gpt-4.1", generation_model="gpt-4o", scoring_model="gpt-4.1-mini")
        assert client.resolve_model("generation") == "gpt-4o"
        assert client.resolve_model("scoring") == "gpt-4.1-mini"
        assert client.resolve_model(None) == "gpt-4.1"

    def test_empty_override_falls_back(self):
        client = _client(model_name="gpt-4.1", generation_model="", scoring_model="")
        assert client.resolve_model("generation") == "gpt-4.1"
        assert client.resolve_model("scoring") == "gpt-4.1"


class TestProviderDetection:

    def test_claude_models_route_to_anthropic(self):
        client = _client(ai_provider="openai")
        assert client.detect_provider("claude-sonnet-4-5") == AIProvider.ANTHROPIC
        assert client.detect_provider("Claude-3-haiku") == AIProvider.ANTHROPIC

    def test_other_models_follow_setting(self):
        assert _client(ai_provider="openai").detect_provider("gpt-4.1") == AIProvider.OPENAI
        assert _client(ai_provider="anthropic").detect_provider("gpt-4.1") == AIProvider.ANTHROPIC

    def test_unknown_provider_setting_defaults_to_openai(self):
        assert _client(ai_provider="mystery").detect_provider("gpt-4.1") == AIProvider.OPENAI


class TestChat:

    @pytest.mark.asyncio
    async def test_openai_json_mode(self):
        client = _client(generation_model="gpt-4o")
        completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content='{"prompts": []}'))])
        client._openai = MagicMock()
        client._openai.chat.completions.create = AsyncMock(return_value=completion)

        result = await client.chat([{"role": "user", "content": "hi"}], use_case="generation", json_mode=True)

        assert result == '{"prompts": []}'
        kwargs = client._openai.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_anthropic_system_message_lifted(self):
        client = _client(scoring_model="claude-haiku-4-5")
        message = SimpleNamespace(content=[SimpleNamespace(text='{"score": 1}')])
        client._anthropic = MagicMock()
        client._anthropic.messages.create = AsyncMock(return_value=message)

        result = await client.chat(
            [{"role": "system", "content": "Be kind."}, {"role": "user", "content": "Score this."}],
            use_case="scoring",
            json_mode=True,
        )

        assert result == '{"score": 1}'
        kwargs = client._anthropic.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-haiku-4-5"
        assert kwargs["messages"] == [{"role": "user", "content": "Score this."}]
        assert kwargs["system"].startswith("Be kind.")
        assert "valid JSON" in kwargs["system"]
