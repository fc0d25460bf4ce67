"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat endpoint. "
            "Leave empty to use OpenAI cloud."
        ),
    )
    llm_temperature: float = 0.0

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "bankin_crm_data"

    # Embedding (CRM exports are mostly Japanese, so a multilingual model)
    embedding_model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"

    # Ingestion
    ingest_concurrency: int = Field(default=4, ge=1, description="Max source files ingested at once")
    sample_data_dir: str = "data/raw"

    # Query
    default_top_k: int = Field(default=5, ge=1)
    default_min_score: float = Field(default=0.0, ge=0.0, le=1.0)
    history_turns_for_retrieval: int = Field(
        default=2,
        ge=0,
        description="Number of recent user turns folded into the retrieval query",
    )

    # Runtime
    environment: str = "development"
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton, import `settings` wherever needed.
settings = Settings()
