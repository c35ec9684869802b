from typing import List, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Value shipped in .env.example; treated the same as a missing key.
PLACEHOLDER_API_KEY = "your_openai_api_key_here"


class Settings(BaseSettings):
    openai_api_key: Optional[SecretStr] = None
    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str = "https://api.openai.com/v1/embeddings"
    embedding_timeout: float = 60.0

    # Reported by /vector/stats; each index learns its real dimension
    # from the first vector it stores.
    vector_dimension: int = 1536
    vector_storage_path: str = "./data/vectors"

    # Chunking (words)
    chunk_size: int = 500
    chunk_overlap: int = 50

    # Context formatting
    min_chunk_chars: int = 200
    blocked_phrases: List[str] = []

    diversity_overfetch: int = 2

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    def resolved_api_key(self) -> Optional[str]:
        """Return the usable embedding credential, or None if unset."""
        if self.openai_api_key is None:
            return None
        value = self.openai_api_key.get_secret_value().strip()
        if not value or value == PLACEHOLDER_API_KEY:
            return None
        return value


settings = Settings()
