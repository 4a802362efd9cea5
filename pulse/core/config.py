from pydantic_settings import BaseSettings
from typing import List, Optional, Union
from pydantic import field_validator
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Project Pulse API"
    FRONTEND_URL: str = "http://localhost:5173"

    # Database Settings
    POSTGRES_USER: str = "user"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "pulse_db"

    # Full URL override (e.g. sqlite:///./pulse.db for local runs and tests)
    DATABASE_URI: Optional[str] = None

    # Per-statement timeout applied on PostgreSQL connections (0 disables)
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URI:
            return self.DATABASE_URI
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis Settings (for Celery task queue)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # JWT Settings - access and refresh tokens are signed with different secrets
    JWT_ACCESS_SECRET: str = "change-me-access-secret"
    JWT_REFRESH_SECRET: str = "change-me-refresh-secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "project-pulse-api"
    JWT_AUDIENCE: str = "project-pulse-client"
    ACCESS_TOKEN_TTL_SECONDS: int = 900  # 15 minutes
    REFRESH_TOKEN_TTL_SECONDS: int = 604800  # 7 days

    # Password hashing
    BCRYPT_ROUNDS: int = 12

    # Lockout policy
    LOCKOUT_SHORT_THRESHOLD: int = 3
    LOCKOUT_SHORT_MINUTES: int = 15
    LOCKOUT_LONG_THRESHOLD: int = 5
    LOCKOUT_LONG_MINUTES: int = 30

    # Single-use tokens
    PASSWORD_RESET_TOKEN_TTL_SECONDS: int = 3600  # 1 hour
    EMAIL_VERIFICATION_TOKEN_TTL_SECONDS: int = 86400  # 24 hours
    USED_TOKEN_RETENTION_HOURS: int = 24

    # Sessions
    SESSION_RETENTION_DAYS: int = 30
    SESSION_CONCURRENCY_ALERT_THRESHOLD: int = 5  # alert when more than this many are already active

    # AWS SES Settings (email delivery)
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_SES_FROM_EMAIL: str = "no-reply@projectpulse.app"
    AWS_SES_FROM_NAME: str = "Project Pulse"

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    # CORS Settings - can be set as JSON string in .env
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:5173", "http://localhost:8000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[List[str], str]) -> List[str]:
        """Parse CORS origins from JSON string or list"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, split by comma
                return [origin.strip() for origin in v.split(",")]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
