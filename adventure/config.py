"""
Configuration management for the adventure engine
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # LLM Provider Configuration
    model_provider: Literal["openai", "openrouter"] = Field(default="openai")
    openai_api_base: str = Field(default="https://api.openai.com/v1")
    openai_api_key: str = Field(default="")
    model_name: str = Field(default="gpt-4o-mini")

    # Per-phase model overrides, fall back to model_name when empty
    model_name_memory_fetch: str = Field(default="")
    model_name_narrative: str = Field(default="")
    model_name_assistant: str = Field(default="")

    # Embedding Provider Configuration (for semantic memory search)
    # Options: "openai", "ollama", "huggingface", "fake"
    embedding_provider: Literal["openai", "ollama", "huggingface", "fake"] = Field(
        default="openai"
    )
    embedding_model_name: str = Field(
        default="text-embedding-3-small",
        description="Embedding model name (e.g., 'nomic-embed-text' for Ollama, 'text-embedding-3-small' for OpenAI)",
    )
    embedding_api_base: Optional[str] = Field(
        default=None,
        description="Embedding API base URL (defaults to openai_api_base if not set)",
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)

    # Storage and prompt files
    database_path: str = Field(
        default="data/adventure.db",
        description="SQLite database file path for storing adventure snapshots",
    )
    max_save_files: int = Field(default=4, ge=1)
    prompts_dir: Optional[str] = Field(
        default=None,
        description="Directory with <name>.txt prompt templates overriding the built-in ones",
    )
    story_parameters_path: str = Field(default="prompts/story/story-parameters.json")

    # Turn pipeline
    turns_to_keep: int = Field(default=8)
    turns_to_keep_in_history: int = Field(default=4)
    turns_to_summarize: int = Field(default=5)
    memory_fetch_min_turn: int = Field(default=2)
    enable_critic_phase: bool = Field(default=False)
    transport_retry_count: int = Field(default=3, ge=1)
    max_model_rounds: int = Field(default=8, ge=1)

    # Memory
    max_fetched_entities: int = Field(default=20)
    min_entity_age_to_delete: int = Field(default=2)
    entity_search_results: int = Field(default=5)
    narrative_search_results: int = Field(default=10)
    narrative_chunk_min_length: int = Field(default=400)
    narrative_chunk_target_length: int = Field(default=1200)
    narrative_chunk_max_length: int = Field(default=2000)

    # Critic feedback thresholds (narrative word count)
    min_narrative_words: int = Field(default=500)
    low_narrative_words: int = Field(default=600)

    class Config:
        env_file = ".env"
        case_sensitive = False

    def phase_model(self, override: str) -> str:
        """Resolve a per-phase model name"""
        return override or self.model_name


# Global settings instance
settings = Settings()
