import asyncio

import pytest

from core.errors import GeneratorFailure, GeneratorUnavailable
from core.types import ConversationTurn
from llmgen.generator import Generator, UnavailableGenerator, create_generator
from llmgen import providers
from llmgen.providers import LLMProvider, get_provider, list_providers, register_provider


class ScriptedProvider(LLMProvider):
    def __init__(self, chunks=("Hel", "lo"), delay=0.0, error=None):
        self.chunks = chunks
        self.delay = delay
        self.error = error
        self.configs = []

    @property
    def name(self):
        return "scripted"

    def get_models(self):
        return ["scripted-1"]

    async def stream_response(self, config):
        self.configs.append(config)
        for chunk in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk
        if self.error is not None:
            raise self.error


TURNS = [
    ConversationTurn("system", "be brief"),
    ConversationTurn("user", "hi"),
    ConversationTurn("assistant", "hello"),
    ConversationTurn("user", "again"),
]


def test_stream_is_collected_and_system_folded():
    provider = ScriptedProvider()
    text = asyncio.run(Generator(provider).generate(TURNS))

    assert text == "Hello"
    config = provider.configs[0]
    assert config.model == "scripted-1"
    assert config.system == "be brief"
    assert [m["role"] for m in config.history] == ["user", "assistant", "user"]


def test_slow_provider_times_out():
    provider = ScriptedProvider(delay=1.0)
    with pytest.raises(GeneratorFailure):
        asyncio.run(Generator(provider, timeout=0.05).generate(TURNS))


def test_provider_error_becomes_failure():
    provider = ScriptedProvider(error=RuntimeError("quota exceeded"))
    with pytest.raises(GeneratorFailure, match="quota exceeded"):
        asyncio.run(Generator(provider).generate(TURNS))


def test_no_user_message_is_failure():
    with pytest.raises(GeneratorFailure):
        asyncio.run(Generator(ScriptedProvider()).generate([ConversationTurn("system", "x")]))


def test_create_generator_without_provider_is_unavailable():
    generator = create_generator(None)
    assert isinstance(generator, UnavailableGenerator)
    with pytest.raises(GeneratorUnavailable):
        asyncio.run(generator.generate(TURNS))


def test_create_generator_with_unknown_provider_is_unavailable():
    generator = create_generator("no-such-vendor")
    assert isinstance(generator, UnavailableGenerator)
    assert "no-such-vendor" in generator.reason


def test_registered_provider_is_used(monkeypatch):
    monkeypatch.setattr(providers, "_PROVIDERS", dict(providers._PROVIDERS))
    monkeypatch.setattr(providers, "_provider_instances", {})
    register_provider("scripted", ScriptedProvider)

    assert "scripted" in list_providers()
    generator = create_generator("scripted", timeout=5)
    assert isinstance(generator, Generator)
    assert generator.provider is get_provider("scripted")
    assert asyncio.run(generator.generate(TURNS)) == "Hello"
