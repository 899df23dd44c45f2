from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # -------------------------------------------------
    # General
    # -------------------------------------------------
    PROJECT_NAME: str = "Acceso Residencial API"
    ENV: str = "development"
    LOG_LEVEL: str = Field("INFO", env="LOG_LEVEL")

    # Public URL of the web app (invitation / invite-link URLs are built from it)
    APP_BASE_URL: str = Field("http://localhost:3000", env="APP_BASE_URL")

    # -------------------------------------------------
    # Frontend Domains
    # -------------------------------------------------
    FRONTEND_DOMAINS: List[str] = [
        "http://localhost:3000",
    ]

    # -------------------------------------------------
    # CORS (auto-built below)
    # -------------------------------------------------
    BACKEND_CORS_ORIGINS: List[str] = []

    # -------------------------------------------------
    # Supabase (Primary DB & Auth)
    # -------------------------------------------------
    SUPABASE_URL: Optional[str] = Field(None, env="SUPABASE_URL")
    SUPABASE_ANON_KEY: Optional[str] = Field(None, env="SUPABASE_ANON_KEY")
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = Field(None, env="SUPABASE_SERVICE_ROLE_KEY")

    # -------------------------------------------------
    # SMTP Email Notifications
    # -------------------------------------------------
    SMTP_HOST: Optional[str] = Field(None, env="SMTP_HOST")
    SMTP_PORT: Optional[int] = Field(None, env="SMTP_PORT")
    SMTP_USER: Optional[str] = Field(None, env="SMTP_USER")
    SMTP_PASS: Optional[str] = Field(None, env="SMTP_PASS")

    # Discord/Slack-style webhook for gate notifications (optional)
    NOTIFICATION_WEBHOOK_URL: Optional[str] = Field(None, env="NOTIFICATION_WEBHOOK_URL")

    # -------------------------------------------------
    # Access control / chat limits
    # -------------------------------------------------
    DEFAULT_ORGANIZATION_TYPE: str = "residential"
    QR_CODE_TTL_HOURS: int = Field(24, env="QR_CODE_TTL_HOURS", description="Hours a visitor QR code stays valid (default: 24)")
    INVITATION_TTL_DAYS: int = Field(7, env="INVITATION_TTL_DAYS", description="Days an email invitation stays valid (default: 7)")
    CHAT_MESSAGE_MAX_LENGTH: int = Field(5000, env="CHAT_MESSAGE_MAX_LENGTH")

    # -------------------------------------------------
    # Model Config
    # -------------------------------------------------
    class Config:
        case_sensitive = True


# Instantiate settings
settings = Settings()

# -------------------------------------------------
# Build CORS list dynamically after loading settings
# -------------------------------------------------
cors_origins = []

# 1) the web app itself
if settings.APP_BASE_URL:
    base = settings.APP_BASE_URL
    if not base.startswith("http"):
        base = f"https://{base}"
    cors_origins.append(base.rstrip("/"))

# 2) any extra frontend domains
cors_origins.extend([d.rstrip("/") for d in settings.FRONTEND_DOMAINS])

# 3) remove duplicates
settings.BACKEND_CORS_ORIGINS = sorted(list(set(cors_origins)))
