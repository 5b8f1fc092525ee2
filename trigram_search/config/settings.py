from pydantic_settings import BaseSettings
from typing import List, Optional
import os

class DatabaseSettings(BaseSettings):
    URL: str = os.getenv("DATABASE_URL", "postgresql://search_user:search_password@db:5432/search_db")
    POOL_MIN_CONNECTIONS: int = 1
    POOL_MAX_CONNECTIONS: int = 10

class RedisSettings(BaseSettings):
    URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    ENABLED: bool = True
    TTL_SECONDS: int = 60
    KEY_PREFIX: str = "ss"

class ServerSettings(BaseSettings):
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False

class EngineSettings(BaseSettings):
    TABLE_NAME: str = os.getenv("SEARCH_TABLE", "translations")
    SEARCH_COLUMNS: List[str] = ["text"]
    # Columns callers may filter on through the HTTP API
    FILTER_COLUMNS: List[str] = []
    ID_COLUMN: str = "id"
    LANGUAGE_COLUMN: Optional[str] = None
    FTS_COLUMN: Optional[str] = None  # precomputed tsvector ("turbo mode")
    EMBEDDING_COLUMN: str = "embedding"
    DEFAULT_LIMIT: int = 20
    MAX_LIMIT: int = 100
    TIER: str = "STANDARD"

class EmbeddingSettings(BaseSettings):
    PROVIDER: str = "none"  # none | openai | gemini
    API_KEY: str = os.getenv("EMBEDDING_API_KEY", "")
    MODEL: Optional[str] = None
    REQUEST_TIMEOUT: float = 10.0

class AppSettings(BaseSettings):
    DB: DatabaseSettings = DatabaseSettings()
    REDIS: RedisSettings = RedisSettings()
    SERVER: ServerSettings = ServerSettings()
    ENGINE: EngineSettings = EngineSettings()
    EMBEDDING: EmbeddingSettings = EmbeddingSettings()

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = AppSettings()
