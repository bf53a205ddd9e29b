from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
import secrets

class Settings(BaseSettings):
    # ----------------------------------
    # App General Info
    # ----------------------------------
    PROJECT_NAME: str = "TicketDesk"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = Field(
        default="development",
        description="Current environment: development, testing, staging, or production"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root logger level")

    # ----------------------------------
    # Relational Database (tickets, archive, users, logs)
    # ----------------------------------
    DATABASE_URL: str = Field(default="sqlite:///./ticketdesk.db")

    # ----------------------------------
    # Distribution & Escalation Policy
    # ----------------------------------
    REASSIGNMENT_TIMEOUT_MINUTES: int = Field(
        default=20,
        ge=1,
        description="An Active ticket untouched for this long is reclaimed back to Open.",
    )
    MAX_TICKETS_PER_AGENT: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Active tickets an agent may hold at once. 5 is the hard ceiling.",
    )
    COMPLETED_MAX_AGE_HOURS: int = Field(
        default=24,
        ge=1,
        description="Completed tickets older than this are closed regardless of level.",
    )
    EXPIRY_INACTIVITY_MINUTES: int = Field(
        default=60,
        ge=1,
        description="Open/Active tickets missing from an upload and idle this long expire.",
    )
    DISTRIBUTION_TIMEOUT_SECONDS: float = Field(
        default=8.0,
        gt=0,
        description="Budget for one distribution cycle or batch save before it aborts.",
    )
    RETAIN_ASSIGNEE_ON_ESCALATION: bool = Field(
        default=True,
        description="Keep the completing agent recorded on a ticket escalated to Pending.",
    )
    DEFAULT_CATEGORY: str = Field(
        default="K3",
        pattern=r"^K[123]$",
        description="Category given to uploaded rows whose SID has no category filter.",
    )

    # ----------------------------------
    # Auth (JWT)
    # ----------------------------------
    JWT_SECRET_KEY: str = Field(
        default_factory=lambda: secrets.token_urlsafe(48),
        description="JWT signing secret. Set in .env for stable sessions.",
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 12)

    # ----------------------------------
    # Admin bootstrap (optional)
    # ----------------------------------
    ADMIN_BOOTSTRAP_USERNAME: Optional[str] = Field(default=None, description="Create/update this admin user on startup")
    ADMIN_BOOTSTRAP_PASSWORD: Optional[str] = Field(default=None, description="Admin password used on startup bootstrap")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
