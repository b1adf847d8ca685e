"""
Configuration management for the roulette chat service.
Loads settings from environment variables.
"""
from typing import List, Union
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis configuration
    REDIS_HOST: str = Field(default="localhost", description="Redis host")
    REDIS_PORT: int = Field(default=6379, description="Redis port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str = Field(default="", description="Redis password (empty if not set)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum Redis connection pool size")

    # FastAPI configuration
    API_HOST: str = Field(default="0.0.0.0", description="FastAPI host")
    API_PORT: int = Field(default=8000, description="FastAPI port")
    CORS_ORIGINS: Union[str, List[str]] = Field(default="*", description="Comma-separated allowed CORS origins")

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Accept either a list or a comma-separated string of origins."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return list(v or [])

    # Roulette / private chat configuration
    ROULETTE_DURATION_SECONDS: int = Field(default=180, description="Length of a random roulette session")
    PRIVATE_CHAT_DURATION_SECONDS: int = Field(default=300, description="Initial length of a private chat")
    EXTEND_DURATION_SECONDS: int = Field(default=300, description="Length of a private chat after a mutual extend")
    SESSION_TTL_BUFFER_SECONDS: int = Field(
        default=60,
        description="Extra TTL on session records so abandoned sessions expire even if cleanup fails"
    )
    TIMER_TICK_SECONDS: float = Field(default=1.0, description="Countdown tick interval in seconds")

    # Matchmaking worker configuration
    MATCHMAKING_WORKER_INTERVAL: float = Field(default=2.0, description="Matchmaking sweep interval in seconds")
    MATCHMAKING_WORKER_BATCH_SIZE: int = Field(default=10, description="Maximum pairs created per sweep")

    # Users
    USER_TTL_SECONDS: int = Field(default=3600, description="TTL of a registered user record")
    MAX_NAME_LENGTH: int = Field(default=50, description="Maximum display name length")
    MAX_MESSAGE_LENGTH: int = Field(default=1000, description="Maximum chat message length")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
