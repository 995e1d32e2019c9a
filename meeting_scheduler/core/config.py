import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

class SchedulingSettings(BaseModel):
    completion_interval_seconds: int = Field(default=int(os.getenv("COMPLETION_INTERVAL_SECONDS", "300")))
    enable_completion_scheduler: bool = Field(
        default=os.getenv("ENABLE_COMPLETION_SCHEDULER", "true").lower() == "true"
    )
    slot_minutes: int = Field(default=int(os.getenv("SLOT_MINUTES", "30")))
    timezone: str = Field(default=os.getenv("SCHEDULING_TIMEZONE", "UTC"))
    min_rating: int = 1
    max_rating: int = 5
    storage_retry_attempts: int = Field(default=int(os.getenv("STORAGE_RETRY_ATTEMPTS", "3")))
    reminder_window_hours: int = Field(default=int(os.getenv("REMINDER_WINDOW_HOURS", "24")))

class Config(BaseModel):
    app_name: str = "Meeting Scheduler"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./meetings.db")

    # Auth (tokens are issued by the identity provider, we only verify them)
    secret_key: str = os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # Scheduling core
    scheduling: SchedulingSettings = SchedulingSettings()

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:5173,"
                "http://127.0.0.1:3000,http://127.0.0.1:5173",
            ).split(",")
            if o.strip()
        ]
    )

    # Rate limiting
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if "dev-only" in settings.secret_key:
        raise RuntimeError(
            "FATAL: SECRET_KEY must be set for non-development environments. "
            "Set it as an environment variable."
        )
else:
    if "dev-only" in settings.secret_key:
        _logger.warning("Using insecure default SECRET_KEY, only acceptable in development.")
