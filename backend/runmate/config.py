from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "runmate-challenges")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "RunMate Challenges")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/runmate_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Identity (tokens are issued by the external auth service)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "15"))

    # Challenge engine
    default_max_participants: int = int(os.getenv("DEFAULT_MAX_PARTICIPANTS", "50"))
    join_code_length: int = int(os.getenv("JOIN_CODE_LENGTH", "6"))
    join_code_attempts: int = int(os.getenv("JOIN_CODE_ATTEMPTS", "5"))
    update_retry_attempts: int = int(os.getenv("UPDATE_RETRY_ATTEMPTS", "3"))
    # Enqueue a status sweep when a read finds a status lagging the clock
    status_sweep_on_read: bool = os.getenv("STATUS_SWEEP_ON_READ", "1") == "1"

settings = Settings()
