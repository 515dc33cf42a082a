from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables or a `.env` file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "blogcms"
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "http://localhost:3000"

    DATABASE_URL: str = "sqlite:///./cms.db"
    DB_CONNECT_RETRIES: int = 5
    DB_RETRY_DELAY_SECONDS: float = 5.0

    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_EXPIRE_SECONDS: int = 3600

    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    # 7 days
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    ADMIN_EMAIL: str = "admin@cms.com"
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"
    AUTO_SEED: bool = True

    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_SIZE: int = 50 * 1024 * 1024
    MAX_UPLOAD_FILES: int = 10
    ALLOWED_MIME_TYPES: List[str] = [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        "video/mp4",
        "video/webm",
        "video/ogg",
        "audio/mpeg",
        "audio/wav",
        "audio/ogg",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "application/zip",
        "application/x-rar-compressed",
    ]

    SSO_CLIENT_ID: Optional[str] = None
    SSO_ISSUER: str = "asgardeo.io"
    SSO_VERIFY_SIGNATURE: bool = False
    SSO_SIGNING_KEY: Optional[str] = None
    SSO_ALGORITHMS: List[str] = ["RS256"]

    WORKER_INTERVAL_SECONDS: int = 30


settings = Settings()
