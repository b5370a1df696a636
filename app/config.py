"""
Receipt intake gateway settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Local ledger of saved receipts
    DATABASE_URL: str = "sqlite:///./data/intake.db"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    DATA_DIR: str = "./data"

    # Upstream HR backend
    RECEIPTS_API_BASE_URL: str = "http://localhost:5000"
    RECEIPTS_API_TIMEOUT: float = 30.0

    # Job polling (no backoff, no jitter)
    POLL_INTERVAL_SECONDS: float = 2.0
    # Checks before a job is given up on; 0 polls forever
    POLL_MAX_ATTEMPTS: int = 150

    # Uploads
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
