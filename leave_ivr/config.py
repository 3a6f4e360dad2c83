"""
Configuration management using Pydantic Settings.
Reads from environment variables (and an optional .env file).
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    organization_name: str = Field(default="H R Services", alias="ORGANIZATION_NAME")

    # Ledger persistence
    ledger_path: str = Field(default="data/leaves.json", alias="LEDGER_PATH")
    seed_balances: dict[str, int] = Field(
        default_factory=lambda: {"CL": 8, "PL": 10, "SL": 9, "PAT": 8},
        alias="SEED_BALANCES",
    )

    # Employee addressing
    employee_email_domain: str = Field(default="company.com", alias="EMPLOYEE_EMAIL_DOMAIN")
    # 6-digit ID -> routable inbox, for demo accounts whose portal address is not real
    notify_address_overrides: dict[str, str] = Field(
        default_factory=dict, alias="NOTIFY_ADDRESS_OVERRIDES"
    )

    # Voice / telephony
    locale_timezone: str = Field(default="Asia/Kolkata", alias="LOCALE_TIMEZONE")
    voice: str = Field(default="alice", alias="VOICE")
    voice_language: str = Field(default="en-IN", alias="VOICE_LANGUAGE")
    gather_timeout: int = Field(default=6, alias="GATHER_TIMEOUT")
    twilio_auth_token: str | None = Field(default=None, alias="TWILIO_AUTH_TOKEN")

    # Call session memory controls
    max_sessions: int = Field(default=1000, alias="MAX_SESSIONS")
    session_ttl_seconds: int = Field(default=1800, alias="SESSION_TTL_SECONDS")

    # Email (SMTP)
    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: str | None = Field(default=None, alias="SMTP_USER")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_from: str | None = Field(default=None, alias="SMTP_FROM")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")

    # Circuit Breaker Configuration
    circuit_breaker_failure_threshold: int = Field(
        default=5, alias="CIRCUIT_BREAKER_FAILURE_THRESHOLD"
    )
    circuit_breaker_timeout: int = Field(default=60, alias="CIRCUIT_BREAKER_TIMEOUT")


# Global settings instance
settings = Settings()
