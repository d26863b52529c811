"""
Configuration management for the application.

Loads environment variables and provides centralized config access.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration"""

    # Flask settings
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    DEBUG: bool = FLASK_ENV == "development"
    FRONTEND_URL: Optional[str] = os.getenv("FRONTEND_URL")

    # OpenAI settings
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    TUTOR_TEMPERATURE: float = float(os.getenv("TUTOR_TEMPERATURE", "0.7"))

    # Chat history kept locally and sent to the tutor
    AI_CHAT_HISTORY_LIMIT: int = int(os.getenv("AI_CHAT_HISTORY_LIMIT", "10"))

    # Guest store settings
    BASE_DIR: Path = Path(__file__).parent.parent
    GUEST_KEY_PREFIX: str = os.getenv("GUEST_KEY_PREFIX", "sdai_guest_")
    GUEST_STORE_PATH: Path = Path(
        os.getenv("GUEST_STORE_PATH", str(BASE_DIR / ".guest_store.db"))
    )

    # Remote store settings
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:5001/api")
    REMOTE_TIMEOUT_SECONDS: float = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))

    # Auth provider (JWKS is served from https://<AUTH_DOMAIN>/.well-known/jwks.json)
    AUTH_DOMAIN: str = os.getenv("AUTH_DOMAIN", "auth.your-domain.com")

    @classmethod
    def validate(cls):
        """Validate required configuration"""
        errors = []

        if not cls.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY is not set")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @classmethod
    def init_directories(cls):
        """Create the directory holding the durable guest store if needed"""
        cls.GUEST_STORE_PATH.parent.mkdir(parents=True, exist_ok=True)


# Create config instance
config = Config()
