"""
LLM Provider Implementations

Each provider wraps one vendor SDK behind the same streaming call:
``stream_response(config)`` yields text chunks for a system prompt plus
a list of ``{"role", "content"}`` messages. SDKs are imported when a
provider is constructed, so only the configured vendor's package has
to be importable.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional


@dataclass
class ProviderConfig:
    """Request parameters for one generation"""
    model: str = ""
    system: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 1024
    history: List[Dict[str, str]] = field(default_factory=list)


class LLMProvider(ABC):
    """Base class for LLM providers"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass

    @property
    def default_model(self) -> str:
        """Default model for this provider. Subclasses can override."""
        suggestions = self.get_models()
        return suggestions[0] if suggestions else ""

    def get_models(self) -> List[str]:
        """
        Suggested models. Any model string is accepted and passed
        straight to the API.
        """
        return []

    @abstractmethod
    async def stream_response(self, config: ProviderConfig) -> AsyncIterator[str]:
        """Yield response text chunks as they arrive."""
        pass


def _chat_messages(config: ProviderConfig) -> List[Dict[str, str]]:
    """Messages for OpenAI-compatible chat APIs (system prompt inline)"""
    messages = []
    if config.system:
        messages.append({"role": "system", "content": config.system})
    for msg in config.history:
        messages.append({"role": msg["role"], "content": msg["content"]})
    return messages


class ClaudeProvider(LLMProvider):
    """Anthropic Claude provider"""

    def __init__(self, api_key: str = None):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY not found")

        from anthropic import AsyncAnthropic
        self.client = AsyncAnthropic(api_key=self.api_key)

    @property
    def name(self) -> str:
        return "claude"

    def get_models(self) -> List[str]:
        return [
            "claude-sonnet-4-5",
            "claude-haiku-4-5",
        ]

    async def stream_response(self, config: ProviderConfig) -> AsyncIterator[str]:
        # Anthropic takes the system prompt separately, not as a message
        request = {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": [
                {"role": m["role"], "content": m["content"]} for m in config.history
            ],
        }
        if config.system:
            request["system"] = config.system

        async with self.client.messages.stream(**request) as stream:
            async for text in stream.text_stream:
                yield text


class GeminiProvider(LLMProvider):
    """Google Gemini provider"""

    def __init__(self, api_key: str = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY not found")

        from google import genai
        self.client = genai.Client(api_key=self.api_key)

    @property
    def name(self) -> str:
        return "gemini"

    def get_models(self) -> List[str]:
        return [
            "gemini-2.5-flash",
            "gemini-2.5-pro",
        ]

    async def stream_response(self, config: ProviderConfig) -> AsyncIterator[str]:
        contents = [
            {
                "role": "user" if m["role"] == "user" else "model",
                "parts": [{"text": m["content"]}],
            }
            for m in config.history
        ]

        response = await self.client.aio.models.generate_content_stream(
            model=config.model,
            contents=contents,
            config={
                "system_instruction": config.system,
                "temperature": config.temperature,
                "max_output_tokens": config.max_tokens,
            }
        )

        async for chunk in response:
            if chunk.text:
                yield chunk.text


class OpenAIProvider(LLMProvider):
    """OpenAI chat-completions provider"""

    env_key = "OPENAI_API_KEY"
    base_url: Optional[str] = None

    def __init__(self, api_key: str = None):
        self.api_key = api_key or os.getenv(self.env_key)
        if not self.api_key:
            raise ValueError(f"{self.env_key} not found")

        from openai import AsyncOpenAI
        if self.base_url:
            self.client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        else:
            self.client = AsyncOpenAI(api_key=self.api_key)

    @property
    def name(self) -> str:
        return "openai"

    def get_models(self) -> List[str]:
        return [
            "gpt-5-mini",
            "gpt-5-nano",
        ]

    async def stream_response(self, config: ProviderConfig) -> AsyncIterator[str]:
        stream = await self.client.chat.completions.create(
            model=config.model,
            messages=_chat_messages(config),
            stream=True,
            max_completion_tokens=config.max_tokens,
        )

        async for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter, through its OpenAI-compatible endpoint"""

    env_key = "OPENROUTER_API_KEY"
    base_url = "https://openrouter.ai/api/v1"

    @property
    def name(self) -> str:
        return "openrouter"

    def get_models(self) -> List[str]:
        return [
            "anthropic/claude-haiku-4.5",
            "openai/gpt-5-mini",
        ]


# Provider registry
_PROVIDERS = {
    "claude": ClaudeProvider,
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
}

_provider_instances: Dict[str, LLMProvider] = {}


def get_provider(name: str) -> LLMProvider:
    """
    Get or create a provider instance.

    Raises ValueError for unknown names or when the provider can't be
    initialized (missing API key or SDK).
    """
    if name not in _provider_instances:
        if name not in _PROVIDERS:
            raise ValueError(f"Unknown provider: {name}. Available: {list(_PROVIDERS.keys())}")

        try:
            _provider_instances[name] = _PROVIDERS[name]()
        except Exception as e:
            raise ValueError(f"Failed to initialize provider {name}: {e}")

    return _provider_instances[name]


def list_providers() -> List[str]:
    """Return list of available provider names"""
    return list(_PROVIDERS.keys())


def register_provider(name: str, provider_class: type):
    """Register a custom provider"""
    _PROVIDERS[name] = provider_class
    _provider_instances.pop(name, None)
