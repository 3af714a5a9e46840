# config/settings.py
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # API
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "MeetMe Compositing Service"

    # CORS
    ALLOWED_HOSTS: List[str] = ["*"]

    # Auth (admin placeholder editing)
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: str = "secret"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./meetme.db"

    # Managed backend (download limits + stats)
    BACKEND_API_URL: str = "http://localhost:54321"
    BACKEND_API_KEY: Optional[str] = None
    REQUEST_TIMEOUT: int = 30

    # Editor
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    SESSION_TTL_SECONDS: int = 600
    MAX_ZOOM_FACTOR: float = 3.0
    DEFAULT_CONTAINER_WIDTH: int = 384

    # Sharing
    LINKEDIN_COMPOSE_URL: str = "https://www.linkedin.com/feed/?shareActive=true"
    INSTAGRAM_URL: str = "https://www.instagram.com/"
    MAX_CAPTION_LENGTH: int = 3000

    # Env
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
