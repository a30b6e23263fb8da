from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "RAG Chat"
    API_V1_PREFIX: str = "/api/v1"

    # ===========================================
    # Environment Mode
    # ===========================================
    ENV: Literal["development", "production"] = "development"

    # ===========================================
    # Database
    # ===========================================
    DATABASE_URL: str = "sqlite:///./ragchat.db"

    # ===========================================
    # Cloud Provider (Gemini REST API)
    # ===========================================
    CLOUD_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    CLOUD_API_KEY: str = ""
    CLOUD_CHAT_MODEL: str = "gemini-2.5-flash"
    CLOUD_EMBEDDING_MODEL: str = "gemini-embedding-001"
    CLOUD_TIMEOUT: float = 60.0  # seconds

    # ===========================================
    # Local Provider (Ollama)
    # ===========================================
    # Route embedding/chat calls to the local server when it is reachable
    USE_LOCAL_LLM: bool = False
    LOCAL_API_BASE: str = "http://localhost:11434"
    LOCAL_CHAT_MODEL: str = "llama3.2"
    LOCAL_EMBEDDING_MODEL: str = "nomic-embed-text"
    LOCAL_PROBE_TIMEOUT: float = 2.0  # seconds
    EMBEDDING_TIMEOUT: float = 60.0  # seconds
    LLM_TIMEOUT: float = 120.0  # seconds

    # ===========================================
    # Rate Limit Handling
    # ===========================================
    RATE_LIMIT_MAX_RETRIES: int = 3
    # The cloud API suggests ~32s on 429
    RATE_LIMIT_RETRY_WAIT: float = 35.0

    # ===========================================
    # Chunking
    # ===========================================
    CHUNK_SIZE: int = 800
    CHUNK_OVERLAP: int = 50
    MIN_CHUNK_LENGTH: int = 20
    MAX_CHUNKS_PER_DOCUMENT: int = 15
    MAX_EMBED_INPUT_CHARS: int = 8000

    # ===========================================
    # Ingestion
    # ===========================================
    INGEST_BATCH_SIZE: int = 5
    INGEST_BATCH_DELAY: float = 1.5  # seconds between embedding batches
    MAX_DOCUMENT_CONTENT_CHARS: int = 15000
    MIN_DOCUMENT_TEXT_LENGTH: int = 10
    MAX_UPLOAD_SIZE_MB: int = 10
    PDF_PARSE_TIMEOUT: float = 30.0  # seconds

    # ===========================================
    # Retrieval
    # ===========================================
    RETRIEVAL_TOP_K: int = 10
    RETRIEVAL_THRESHOLD: float = 0.15

    # ===========================================
    # Chat History Settings
    # ===========================================
    # Maximum number of previous messages to include in LLM context
    MAX_CHAT_HISTORY_MESSAGES: int = 20
    SESSION_TITLE_LENGTH: int = 50

    class Config:
        env_file = ".env"


settings = Settings()
