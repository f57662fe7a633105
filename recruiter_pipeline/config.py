"""Application configuration."""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings."""

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "recruiter_pipeline"

    # Application
    app_name: str = "Recruiter Pipeline API"
    app_version: str = "1.0.0"
    debug: bool = True
    log_level: str = "INFO"

    # CORS
    allowed_origins: str = "http://localhost:5173,http://localhost:3000"

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    # A repeated rejection with the same stage and reason inside this window
    # is treated as a retry of the previous one.
    rejection_retry_window_seconds: int = 60

    # API client
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 30.0
    auth_refresh_path: str = "/api/v1/auth/refresh"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Get allowed origins as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
