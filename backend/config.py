from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service configuration, read from the environment and ``.env``."""

    log_level: str = "INFO"

    # CORS: comma-separated origins allowed to call the analysis API
    cors_origins: str = "http://localhost:5173"

    # Entity identifier backend: "openai", "anthropic" or "ollama"
    default_provider: str = "openai"
    llm_timeout_seconds: float = 300.0

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com"

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"

    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"

    # Chunking
    chunk_size: int = 2000         # characters per unstructured chunk
    chunk_overlap: int = 200       # characters shared by consecutive chunks
    column_chunk_size: int = 4     # columns per CSV / spreadsheet chunk

    # Validation (confidence on a 0-10 scale)
    minimum_confidence: float = 7
    strict_mode: bool = False

    dedup_case_sensitive: bool = False

    # Chunks sent to the identifier at the same time, per job
    max_concurrent_chunks: int = 5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
