"""
Provider factory for creating LLM providers based on configuration
"""

from ..config import Settings, settings
from .base import BaseProvider
from .openai import OpenAIProvider

DEFAULT_OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"


def create_provider(config: Settings = settings) -> BaseProvider:
    """Create a provider instance based on configuration"""

    if config.model_provider == "openai":
        return OpenAIProvider(
            api_base=config.openai_api_base,
            api_key=config.openai_api_key,
            model_name=config.model_name,
        )
    elif config.model_provider == "openrouter":
        api_base = config.openai_api_base
        # Still pointing at OpenAI, switch to the OpenRouter default
        if api_base == "https://api.openai.com/v1":
            api_base = DEFAULT_OPENROUTER_API_BASE

        return OpenAIProvider(
            api_base=api_base,
            api_key=config.openai_api_key,
            model_name=config.model_name,
        )
    else:
        raise ValueError(f"Unsupported provider: {config.model_provider}")
