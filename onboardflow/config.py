"""
Configuration settings for the onboarding workflow service.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "OnboardFlow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Workflow Engine
    MAX_STEPS_PER_RESUME: int = 100  # Runaway guard for a single resume call
    SECURE_TOKEN_RETRY_LIMIT: int = 1

    # Remote operations
    TOOL_SERVER_URL: Optional[str] = None
    TOOL_CALL_TIMEOUT: float = 30.0  # Seconds

    # Onboarding credentials
    CLIENT_APP_ID: Optional[str] = None
    ENC_SECRET: Optional[str] = None
    ENC_API_KEY: Optional[str] = None
    CONSUMER_ID: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
