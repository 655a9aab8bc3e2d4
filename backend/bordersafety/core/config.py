"""
Application Configuration Module

Uses Pydantic Settings to manage every configuration item of the Border Safety
backend, read from the .env file and environment variables. Covers the SQLite
storage location, the API route prefix, threat-level defaults, log retention,
HTTP hardening and the outbound notification channel credentials.
"""
import logging
from pathlib import Path

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    """
    Application Global Configuration Class

    Field names map to same-named environment variables (case insensitive),
    with .env file loading.
    """

    # Storage Configuration
    database_path: str = "./data/bordersafety.sqlite"  # SQLite file, created on first open
    database_busy_timeout: float = 30.0  # Seconds a writer waits on a locked database
    database_echo: bool = False  # Echo SQL statements

    # API Configuration
    api_prefix: str = "/api/v1"  # Base path prefix for all API routes
    app_version: str = "1.0.0"

    # Threat Level Configuration
    default_threat_level: str = "YELLOW"  # Value served until an admin sets one

    # Log Retention Configuration
    log_retention_days: int = 30  # Application log retention in days
    log_cleanup_enabled: bool = False  # Run the hourly retention purge in the background
    log_cleanup_interval: int = 3600  # Seconds between purge runs
    log_level: str = "INFO"  # Python logging level

    # Security Configuration
    enable_security_headers: bool = True
    max_request_size: int = 1024 * 1024  # Max request body in bytes
    environment: str = "development"  # development/production
    frontend_url: str = "http://localhost:5173"  # Vite dev server
    cors_origins: str = ""  # Extra comma separated origins allowed in production

    # Notification Channels (all optional, stubbed when missing)
    line_notify_token: str = ""
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    fcm_server_key: str = ""
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = "noreply@bordersafety.local"
    smtp_host: str = "smtp.sendgrid.net"
    smtp_port: int = 465
    notification_timeout: float = 10.0
    # Alert recipients for threat-level changes (a channel without one is disabled)
    alert_sms_to: str = ""  # E.164 phone number
    alert_push_topic: str = ""  # FCM topic name
    alert_email_to: str = ""

    @property
    def database_url(self) -> str:
        """
        Build the SQLite async connection URL for the aiosqlite driver.

        ``:memory:`` is passed through untouched; any other path is resolved
        so the engine does not depend on the working directory later on.
        """
        if self.database_path == ":memory:":
            return "sqlite+aiosqlite:///:memory:"
        return f"sqlite+aiosqlite:///{Path(self.database_path).expanduser().resolve()}"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def allowed_origins(self) -> list[str]:
        """CORS origins: open in development, frontend plus extras in production."""
        if not self.is_production:
            return ["*"]
        extra = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return [self.frontend_url, *extra]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


def configure_logging(level: str | None = None, force: bool = False) -> None:
    """
    Install the root logging configuration used by the server and the CLI.

    Without ``force`` an existing root configuration is left in place.
    """
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        force=force,
    )


# Global Configuration Instance
settings = Settings()
