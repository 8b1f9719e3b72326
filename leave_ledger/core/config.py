import os
import logging
from pydantic import BaseModel, Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

class LedgerSettings(BaseModel):
    default_annual_quota: int = Field(default=int(os.getenv("DEFAULT_ANNUAL_QUOTA", "6")), ge=0)
    default_sick_quota: int = Field(default=int(os.getenv("DEFAULT_SICK_QUOTA", "6")), ge=0)
    default_personal_quota: int = Field(default=int(os.getenv("DEFAULT_PERSONAL_QUOTA", "6")), ge=0)

    # recompute_all pages through the workforce this many employees at a time
    recompute_chunk_size: int = Field(default=int(os.getenv("RECOMPUTE_CHUNK_SIZE", "100")), gt=0)

    # Concurrency
    lock_timeout_seconds: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "10"))
    max_conflict_retries: int = int(os.getenv("MAX_CONFLICT_RETRIES", "3"))

    default_approver: str = os.getenv("DEFAULT_APPROVER", "HR/Admin")

class Config(BaseModel):
    app_name: str = "Leave Ledger"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    version: str = "1.0.0"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./leave_ledger.db")

    # Tenancy. Used only when the gateway does not send X-Tenant-Id.
    default_tenant_id: str = os.getenv("DEFAULT_TENANT_ID", "TENANT01")
    tenant_header: str = "X-Tenant-Id"
    request_id_header: str = "X-Request-ID"

    ledger: LedgerSettings = LedgerSettings()

    # Rate limiting on write endpoints
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    # Feature Flags
    notifications_enabled: bool = os.getenv("NOTIFICATIONS_ENABLED", "true").lower() == "true"
    bootstrap_tenant: Optional[str] = os.getenv("BOOTSTRAP_TENANT")

settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment != "development" and settings.database_url.startswith("sqlite"):
    _logger.warning("Using SQLite outside development; row-level locks are not available.")
