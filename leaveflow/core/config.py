import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class PolicyDefaults(BaseModel):
    """
    Global leave policy defaults.
    Rows in the system_settings table override these at runtime.
    """
    max_consecutive_leaves: float = Field(default=float(os.getenv("POLICY_MAX_CONSECUTIVE_LEAVES", "15")))
    advance_notice_days: int = Field(default=int(os.getenv("POLICY_ADVANCE_NOTICE_DAYS", "3")))
    auto_approve_enabled: bool = Field(default=_env_bool("POLICY_AUTO_APPROVE_ENABLED", "false"))
    auto_approve_max_days: float = Field(default=float(os.getenv("POLICY_AUTO_APPROVE_MAX_DAYS", "2")))
    carry_over_enabled: bool = Field(default=_env_bool("POLICY_CARRY_OVER_ENABLED", "true"))
    carry_over_limit: float = Field(default=float(os.getenv("POLICY_CARRY_OVER_LIMIT", "10")))
    allow_backdate_leaves: bool = Field(default=_env_bool("POLICY_ALLOW_BACKDATE", "false"))
    allow_overlapping_leaves: bool = Field(default=_env_bool("POLICY_ALLOW_OVERLAP", "false"))
    min_leave_duration: float = Field(default=float(os.getenv("POLICY_MIN_LEAVE_DURATION", "0.5")))
    default_leave_days: float = Field(default=float(os.getenv("POLICY_DEFAULT_LEAVE_DAYS", "20")))
    working_days: List[str] = Field(
        default_factory=lambda: [
            d.strip()
            for d in os.getenv("POLICY_WORKING_DAYS", "Monday,Tuesday,Wednesday,Thursday,Friday").split(",")
            if d.strip()
        ]
    )


class Config(BaseModel):
    app_name: str = "Leave Lifecycle Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./leaveflow.db")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = os.getenv("REQUEST_ID_HEADER", "X-Request-ID")

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    # Optimistic concurrency: how many times the HTTP layer replays an operation
    # that lost a compare-and-swap race before surfacing the conflict.
    conflict_retry_attempts: int = int(os.getenv("CONFLICT_RETRY_ATTEMPTS", "3"))

    policy: PolicyDefaults = PolicyDefaults()


settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment != "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.warning("Using a local SQLite file outside development; multi-instance deployments need a shared database.")
