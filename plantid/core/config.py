"""
Application configuration with environment-based settings.

Configuration is centralized here so the storage location, classifier
behaviour and pipeline limits can be changed per environment without
touching code.
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "Plant ID Log"
    app_version: str = "0.1.0"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Server Configuration (local presentation surface only)
    host: str = "127.0.0.1"
    port: int = 8000

    # Storage
    database_path: str = "./plantid.db"
    history_limit: int = Field(default=20, ge=1)

    # Classifier
    top_k: int = Field(default=3, ge=1, le=3)
    classifier_seed: Optional[int] = None
    model_load_delay_seconds: float = Field(default=1.5, ge=0.0)
    model_load_timeout_seconds: float = Field(default=30.0, gt=0.0)
    classification_timeout_seconds: float = Field(default=10.0, gt=0.0)

    # Capture
    capture_permission_granted: bool = True
    max_image_size_mb: float = 10.0
    # Directory gallery picks by path must resolve inside; None disables path picks
    gallery_dir: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "PLANTID_"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Label set of the reference classifier
SPECIES_NAMES = [f"Species_{i}" for i in range(1, 21)]

# Confidence bands of the reference classifier, by rank.
# Bands never overlap, so rank order holds by construction.
CONFIDENCE_BANDS = [
    (0.85, 0.95),  # top-1
    (0.03, 0.08),
    (0.01, 0.03),
]
