"""AI client supporting OpenAI and Anthropic.

Usage:
    from promptpool.services.ai_client import AIClient

    client = AIClient(settings)
    result = await client.chat(
        messages=[
            {"role": "system", "content": "You write therapy prompts."},
            {"role": "user", "content": "Give me 12 prompts."},
        ],
        use_case="generation",   # "generation", "scoring", or None for default
        temperature=0.7,
        json_mode=True,
    )
    # result is the text content of the assistant response

Provider is auto-detected per use case from the model name:
  - Models starting with "claude-" route to Anthropic
  - Everything else routes to OpenAI
The client is constructed once at startup and passed to the services that
need it, so tests can hand them an AsyncMock instead.
"""

import logging
from enum import Enum

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from promptpool.config import Settings

logger = logging.getLogger(__name__)


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


# Known Anthropic model prefixes for auto-detection
_ANTHROPIC_PREFIXES = ("claude-",)


def _log_retry(provider: str):
    def _before_sleep(retry_state):
        logger.warning(
            "%s call failed (attempt %d), retrying: %s",
            provider,
            retry_state.attempt_number,
            retry_state.outcome.exception(),
        )
    return _before_sleep


class AIClient:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._openai = None
        self._anthropic = None

    def resolve_model(self, use_case: str | None) -> str:
        """Pick the model name based on the use case and config overrides."""
        if use_case == "generation" and self.settings.generation_model:
            return self.settings.generation_model
        if use_case == "scoring" and self.settings.scoring_model:
            return self.settings.scoring_model
        return self.settings.model_name

    def detect_provider(self, model: str) -> AIProvider:
        """Auto-detect the provider from the model name.

        Models starting with 'claude-' are routed to Anthropic.
        Everything else uses the global ai_provider setting (default: OpenAI).
        """
        model_lower = model.lower()
        for prefix in _ANTHROPIC_PREFIXES:
            if model_lower.startswith(prefix):
                return AIProvider.ANTHROPIC
        try:
            return AIProvider(self.settings.ai_provider.lower())
        except ValueError:
            return AIProvider.OPENAI

    async def chat(
        self,
        messages: list[dict],
        *,
        use_case: str | None = None,
        temperature: float = 0.7,
        json_mode: bool = False,
        max_tokens: int = 4096,
    ) -> str:
        """Send a chat completion and return the assistant text."""
        model = self.resolve_model(use_case)
        provider = self.detect_provider(model)

        if provider == AIProvider.OPENAI:
            return await self._openai_chat(messages, model, temperature, json_mode, max_tokens)
        elif provider == AIProvider.ANTHROPIC:
            return await self._anthropic_chat(messages, model, temperature, json_mode, max_tokens)
        else:
            raise ValueError(f"Unknown AI provider: {provider}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(Exception),
        before_sleep=_log_retry("OpenAI"),
        reraise=True,
    )
    async def _openai_chat(
        self,
        messages: list[dict],
        model: str,
        temperature: float,
        json_mode: bool,
        max_tokens: int,
    ) -> str:
        if self._openai is None:
            from openai import AsyncOpenAI
            self._openai = AsyncOpenAI(api_key=self.settings.api_key)

        kwargs: dict = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._openai.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(Exception),
        before_sleep=_log_retry("Anthropic"),
        reraise=True,
    )
    async def _anthropic_chat(
        self,
        messages: list[dict],
        model: str,
        temperature: float,
        json_mode: bool,
        max_tokens: int,
    ) -> str:
        if self._anthropic is None:
            import anthropic
            self._anthropic = anthropic.AsyncAnthropic(api_key=self.settings.anthropic_api_key)

        # Anthropic uses a separate system parameter, not a system message
        system_text = ""
        chat_messages = []
        for msg in messages:
            if msg["role"] == "system":
                system_text += msg["content"] + "\n"
            else:
                chat_messages.append({"role": msg["role"], "content": msg["content"]})

        if json_mode:
            system_text += "\nYou MUST respond with valid JSON only. No other text.\n"

        # The messages API needs at least one user turn
        if not chat_messages:
            chat_messages.append({"role": "user", "content": "Go."})

        kwargs: dict = {
            "model": model,
            "messages": chat_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if system_text.strip():
            kwargs["system"] = system_text.strip()

        response = await self._anthropic.messages.create(**kwargs)
        return response.content[0].text
