"""Configuration management for the WidgetBot service."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


class Config:
    """Application configuration loaded from environment variables."""

    # Embedding provider (OpenAI)
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get the embedding provider API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Chat completion provider (OpenRouter, OpenAI-compatible)
    @classmethod
    def get_openrouter_api_key(cls) -> str:
        """Get the shared chat-completion API key.

        Returns:
            OpenRouter API key from environment or empty string if not set.
        """
        return os.getenv("OPENROUTER_API_KEY", "")

    OPENROUTER_BASE_URL: str = os.getenv(
        "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
    )
    OPENROUTER_REFERER: str = os.getenv("OPENROUTER_REFERER", "https://lovable.dev")
    OPENROUTER_TITLE: str = os.getenv("OPENROUTER_TITLE", "Chatbot Builder")

    # Transcript notifications (Resend)
    @classmethod
    def get_resend_api_key(cls) -> str:
        """Get the Resend API key used for transcript emails.

        Returns:
            Resend API key or empty string if notifications are disabled.
        """
        return os.getenv("RESEND_API_KEY", "")

    RESEND_API_URL: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    NOTIFICATION_FROM_ADDRESS: str = os.getenv(
        "NOTIFICATION_FROM_ADDRESS",
        "Chatbot Conversations <onboarding@resend.dev>",
    )

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Ingestion Configuration
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "700"))
    MAX_CHUNKS: int = int(os.getenv("MAX_CHUNKS", "1000"))
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

    # Chat Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "microsoft/wizardlm-2-8x22b")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "300"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.1"))
    MAX_HISTORY_MESSAGES: int = int(os.getenv("MAX_HISTORY_MESSAGES", "20"))

    # Retrieval Configuration
    RETRIEVAL_TOP_K: int = int(os.getenv("RETRIEVAL_TOP_K", "5"))
    RETRIEVAL_THRESHOLD: float = float(os.getenv("RETRIEVAL_THRESHOLD", "0.3"))

    # Vector Store Configuration
    VECTOR_BACKEND: str = os.getenv("VECTOR_BACKEND", "sqlite").lower()
    VECTOR_STORE_DB_PATH: Path = Path(
        os.getenv("VECTOR_STORE_DB_PATH", "data/widgetbot.db")
    )
    FAISS_INDEX_DIR: Path = Path(os.getenv("FAISS_INDEX_DIR", "data/faiss"))
    VECTOR_RAW_TOP_K_MULTIPLIER: int = int(
        os.getenv("VECTOR_RAW_TOP_K_MULTIPLIER", "2")
    )

    # HTTP Configuration
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "WidgetBot/1.0")
    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENROUTER_API_KEY is not set.
        """
        if not cls.get_openrouter_api_key():
            msg = (
                "OPENROUTER_API_KEY is required. "
                "Please set it in .env file or environment."
            )
            raise ValueError(msg)

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment.

        Returns:
            True if environment is production.
        """
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def setup_logging(cls) -> None:
        """Configure root logging once, at process start.

        ``LOG_LEVEL`` sets the service level; the provider SDK loggers follow
        ``OPENAI_LOG_LEVEL``.
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Provider SDKs are noisy at INFO
        for name in ("openai", "httpx"):
            logging.getLogger(name).setLevel(
                getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
            )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers

    @classmethod
    def get_cors_origins(cls) -> list[str]:
        """Parse the comma-separated list of allowed browser origins.

        Returns:
            List of origins; ``["*"]`` when unset.
        """
        origins = [
            origin.strip()
            for origin in cls.CORS_ALLOW_ORIGINS.split(",")
            if origin.strip()
        ]
        return origins or ["*"]


config = Config()
