from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".recall" / "data"
    sqlite_filename: str = "recall.db"

    llm_backend: str = "ollama"  # ollama | openai
    ollama_url: str = "http://localhost:11434"
    llm_model: str = "qwen2.5:3b"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str = ""
    llm_timeout: float = 120.0
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2000

    generation_chunk_size: int = 3
    provider_retry_attempts: int = 3
    provider_retry_base_delay: float = 1.0
    provider_retry_max_delay: float = 10.0

    # Answers are persisted one by one; re-writing them on session end is off.
    review_flush_on_end: bool = False

    log_level: str = "warning"

    model_config = {"env_prefix": "RECALL_"}


settings = Settings()
