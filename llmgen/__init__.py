# LLM text generation for node fallback
from .providers import LLMProvider, ProviderConfig, get_provider, list_providers, register_provider
from .generator import TextGenerator, Generator, UnavailableGenerator, create_generator

__all__ = [
    'LLMProvider',
    'ProviderConfig',
    'get_provider',
    'list_providers',
    'register_provider',
    'TextGenerator',
    'Generator',
    'UnavailableGenerator',
    'create_generator',
]
