"""
LLM and embedding providers for the adventure engine
"""

from .base import BaseProvider, ModelCallParameters, StreamEvent, get_message_text
from .embeddings import create_embedding_provider
from .factory import create_provider
from .openai import OpenAIProvider

__all__ = [
    "BaseProvider",
    "ModelCallParameters",
    "StreamEvent",
    "get_message_text",
    "OpenAIProvider",
    "create_provider",
    "create_embedding_provider",
]
