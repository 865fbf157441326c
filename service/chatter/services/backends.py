"""
Model backends.

A backend takes the full message list ({"role", "content"} dicts, oldest
first) and returns the complete answer text. Streamed responses are drained
here so callers only ever see a finished answer.

Backends translate their SDK's failures into the relay's taxonomy:
- NoBackendAvailable: credentials rejected or the endpoint is unreachable
- BackendError: the API answered with a structured error (message + code)
"""

from typing import Optional, Protocol

import anthropic
import openai

from chatter.config import Settings
from .errors import BackendError, ConfigurationError, NoBackendAvailable

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_OPENAI_MODEL = "gpt-4o"

SYSTEM_PROMPT = (
    "You are a programming assistant answering questions sent from a chat app. "
    "Be concise. Put code in fenced code blocks."
)


class ModelBackend(Protocol):
    name: str
    model: str

    async def complete(self, messages: list[dict]) -> str:
        ...


class AnthropicBackend:
    """Claude via the Messages API, streamed."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str = "", max_tokens: int = 4096,
                 client: Optional[anthropic.AsyncAnthropic] = None):
        self.model = model or DEFAULT_ANTHROPIC_MODEL
        self.max_tokens = max_tokens
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)

    async def complete(self, messages: list[dict]) -> str:
        result = ""
        try:
            async with self.client.messages.stream(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=messages,
            ) as stream:
                async for text in stream.text_stream:
                    result += text
        except anthropic.AuthenticationError as e:
            raise NoBackendAvailable(f"Anthropic rejected the API key: {e.message}") from e
        except anthropic.APIConnectionError as e:
            raise NoBackendAvailable(f"Anthropic API is unreachable: {e}") from e
        except anthropic.APIStatusError as e:
            raise BackendError(e.message, e.status_code) from e
        return result


class OpenAIBackend:
    """Chat Completions API, streamed."""

    name = "openai"

    def __init__(self, api_key: str, model: str = "", max_tokens: int = 4096,
                 client: Optional[openai.AsyncOpenAI] = None):
        self.model = model or DEFAULT_OPENAI_MODEL
        self.max_tokens = max_tokens
        self.client = client or openai.AsyncOpenAI(api_key=api_key)

    async def complete(self, messages: list[dict]) -> str:
        result = ""
        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "system", "content": SYSTEM_PROMPT}, *messages],
                stream=True,
            )
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    result += chunk.choices[0].delta.content
        except openai.AuthenticationError as e:
            raise NoBackendAvailable(f"OpenAI rejected the API key: {e.message}") from e
        except openai.APIConnectionError as e:
            raise NoBackendAvailable(f"OpenAI API is unreachable: {e}") from e
        except openai.APIStatusError as e:
            raise BackendError(e.message, e.status_code) from e
        return result


def create_backend(settings: Settings) -> Optional[ModelBackend]:
    """
    Build the configured backend.

    Returns None when the selected provider has no API key, which the
    bridge reports as "not available" instead of failing startup.
    """
    provider = settings.model_provider.lower()

    if provider == "anthropic":
        if not settings.anthropic_api_key:
            return None
        return AnthropicBackend(
            settings.anthropic_api_key,
            model=settings.model_name,
            max_tokens=settings.model_max_tokens,
        )

    if provider == "openai":
        if not settings.openai_api_key:
            return None
        return OpenAIBackend(
            settings.openai_api_key,
            model=settings.model_name,
            max_tokens=settings.model_max_tokens,
        )

    raise ConfigurationError(f"Unknown model provider: {settings.model_provider!r}. Supported: anthropic, openai")
