"""
Text generation capability used by node fallback.

Nodes only see ``TextGenerator.generate(turns) -> str``. ``Generator``
implements it on top of a streaming provider by collecting the stream
under a timeout, so a slow backend can't stall a node forever.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from core.errors import GeneratorFailure, GeneratorUnavailable
from core.types import ConversationTurn, ROLE_SYSTEM
from .providers import LLMProvider, ProviderConfig, get_provider

logger = logging.getLogger(__name__)


class TextGenerator(ABC):
    """Opaque generate(messages) -> text capability"""

    @abstractmethod
    async def generate(self, turns: List[ConversationTurn]) -> str:
        """
        Produce a reply for the conversation.

        Raises GeneratorUnavailable if there is no backend and
        GeneratorFailure if the backend errors or times out.
        """
        pass


class Generator(TextGenerator):
    """TextGenerator backed by an LLMProvider"""

    def __init__(
        self,
        provider: LLMProvider,
        model: str = None,
        timeout: float = 30.0,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ):
        self.provider = provider
        self.model = model or provider.default_model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _build_config(self, turns: List[ConversationTurn]) -> ProviderConfig:
        # System turns are folded into the provider's system prompt
        system_parts = [t.content for t in turns if t.role == ROLE_SYSTEM]
        history = [t.to_dict() for t in turns if t.role != ROLE_SYSTEM]
        return ProviderConfig(
            model=self.model,
            system="\n\n".join(system_parts) or None,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            history=history,
        )

    async def _collect(self, config: ProviderConfig) -> str:
        chunks = []
        async for chunk in self.provider.stream_response(config):
            chunks.append(chunk)
        return "".join(chunks)

    async def generate(self, turns: List[ConversationTurn]) -> str:
        config = self._build_config(turns)
        if not config.history:
            raise GeneratorFailure("no user message to answer")

        logger.debug(f"Generating with {self.provider.name}/{self.model} ({len(config.history)} messages)")
        try:
            return await asyncio.wait_for(self._collect(config), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise GeneratorFailure(f"{self.provider.name} timed out after {self.timeout:g}s")
        except Exception as e:
            raise GeneratorFailure(f"{self.provider.name}: {type(e).__name__}: {e}")


class UnavailableGenerator(TextGenerator):
    """Stand-in when no provider could be started; every call fails cleanly"""

    def __init__(self, reason: str):
        self.reason = reason

    async def generate(self, turns: List[ConversationTurn]) -> str:
        raise GeneratorUnavailable(self.reason)


def create_generator(
    provider_name: Optional[str],
    model: str = None,
    timeout: float = 30.0,
) -> TextGenerator:
    """
    Build a generator for the named provider.

    Never raises: a missing name or a provider that fails to initialize
    yields an UnavailableGenerator carrying the reason, and nodes report
    it inline when fallback is used.
    """
    if not provider_name:
        return UnavailableGenerator("no provider configured")
    try:
        provider = get_provider(provider_name)
    except ValueError as e:
        logger.warning(f"Text generation disabled: {e}")
        return UnavailableGenerator(str(e))
    return Generator(provider, model=model, timeout=timeout)
