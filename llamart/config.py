"""llamart/config.py

Runtime configuration loaded from environment variables / .env file.
"""

from __future__ import annotations

# Third-Party Libraries
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LlamartSettings(BaseSettings):
    """Runtime configuration for the assistant.

    Attributes:
        model_path: Model reference. Also decides text-only vs multimodal routing.
        tokenizer_path: Tokenizer reference handed to backends.
        knowledge_path: Comma-delimited knowledge source (title, description).
        max_tokens: Sequence length passed to every generate call.
        image_width: Target width for multimodal image pre-processing.
        flush_threshold: Buffered tokens are flushed once the buffer exceeds this.
        ollama_host: Ollama API endpoint used by the bundled backends.
        log_level: Root logging level for the CLI.
    """

    model_config = SettingsConfigDict(
        env_prefix="LLAMART_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    model_path: str = Field("", description="Model reference; routing input.")
    tokenizer_path: str = Field("", description="Tokenizer reference.")
    knowledge_path: str = Field(
        "data/dataset.csv",
        description="Line-oriented, comma-delimited knowledge source.",
    )
    max_tokens: int = Field(2048, gt=0, description="Generation sequence length.")
    image_width: int = Field(336, gt=0, description="Multimodal target image width.")
    flush_threshold: int = Field(
        2,
        ge=0,
        description="Flush buffered tokens once the buffer holds more than this.",
    )
    ollama_host: str = Field(
        "http://localhost:11434",
        description="Ollama API endpoint.",
    )
    log_level: str = Field("INFO", description="Root logging level.")
