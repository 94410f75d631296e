"""Configuration management."""

import os
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from project root
project_root = Path(__file__).parent.parent.parent
env_file = project_root / ".env"

# Existing environment variables take precedence over .env
load_dotenv(dotenv_path=env_file, override=False)


def _default_registry_url() -> str:
    return os.getenv("BACKEND_URL", "http://localhost:8000")


class Config:
    """Application configuration."""
    # Tool registry (external HTTP surface)
    TOOL_REGISTRY_URL: str = os.getenv("TOOL_REGISTRY_URL", _default_registry_url()).rstrip("/")
    REGISTRY_TIMEOUT_SECS: float = float(os.getenv("REGISTRY_TIMEOUT_SECS", "30"))
    REGISTRY_MAX_RETRIES: int = int(os.getenv("REGISTRY_MAX_RETRIES", "2"))

    # Base URL the booking webhooks are served from (/ghl/book/, /calcom/book/)
    WEBHOOK_BASE_URL: str = os.getenv("WEBHOOK_BASE_URL", TOOL_REGISTRY_URL).rstrip("/")

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: Optional[str] = os.getenv("LOG_LEVEL")

    # Comma-separated; wildcard only honoured in development
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "")


config = Config()
