"""
Configuration management using Pydantic Settings.
Loads from environment variables or .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Sandbox configuration loaded from environment variables.

    Usage:
        # .env file
        TIMEZONE=Asia/Manila
        RANDOM_SEED=7
        ATTACK_PACING_SCALE=0

        # In code
        from fraud_sandbox.api.config import settings
        print(settings.STEP_UP_CODE)
    """
    # API settings
    API_TITLE: str = "Banking Fraud Sandbox API"
    API_VERSION: str = "1.0.0"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"

    # Clock / randomness
    TIMEZONE: str = "Asia/Manila"
    RANDOM_SEED: Optional[int] = None  # None = fresh randomness per process

    # Banking
    DEFAULT_OPENING_BALANCE: float = 50000.0
    MIN_PASSWORD_LENGTH: int = 6
    STEP_UP_CODE: str = "123456"  # simulated OTP, shown to the customer

    # Models
    ML_NOISE_AMPLITUDE: float = 0.025

    # Attack replay: multiplier on the scripted pauses (0 = no waiting)
    ATTACK_PACING_SCALE: float = 1.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
