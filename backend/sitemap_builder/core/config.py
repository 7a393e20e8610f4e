"""
Application configuration settings
"""

from pydantic_settings import BaseSettings
from typing import Dict, List
from pathlib import Path

class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application Settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    ALLOWED_HOSTS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Database Configuration (content store)
    DATABASE_URL: str = "sqlite:///./content.db"

    # Redis Configuration (Celery broker, result backend and pending markers)
    REDIS_URL: str = "redis://localhost:6379"

    # Public site
    SITE_URL: str = "http://localhost:8000"

    # Sitemap output
    SITEMAP_PATH: Path = Path("./public/sitemap.xml")
    SITEMAP_AUX_PATH: str = "/llms.txt"

    # Post types included in the sitemap with their default priorities
    SITEMAP_POST_TYPES: Dict[str, str] = {
        "page": "0.9",
    }

    # Batching and scheduling
    SITEMAP_BATCH_SIZE: int = 200
    SITEMAP_BATCH_DELAY_SECONDS: int = 5
    SITEMAP_REBUILD_DELAY_SECONDS: int = 5 * 60  # coalesce bursts of publishes
    SITEMAP_LOCK_TIMEOUT: float = 10.0

    # Retry policy for batch tasks
    SITEMAP_TASK_MAX_RETRIES: int = 5
    SITEMAP_RETRY_BACKOFF_SECONDS: int = 10

    # Rebuild once a day even without publishes, so a failed rebuild heals
    SITEMAP_DAILY_REBUILD: bool = True

    # Monitoring and Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()

# Validate settings in production
if settings.ENVIRONMENT == "production":
    if settings.SITE_URL.startswith("http://localhost"):
        raise ValueError("SITE_URL must be set to the public site URL in production")

    if settings.SITEMAP_BATCH_SIZE < 1:
        raise ValueError("SITEMAP_BATCH_SIZE must be a positive integer")

# Database URL for SQLAlchemy
DATABASE_URL = settings.DATABASE_URL
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)
