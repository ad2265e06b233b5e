from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Get the project directory (parent of the lending package)
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"

class Settings(BaseSettings):
    # Server settings (non-confidential, can have defaults)
    host: str = "0.0.0.0"
    port: int = 3000

    # Database settings - confidential values from .env
    # database_url overrides the individual parts when set (e.g. sqlite:// for tests)
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "lending"
    db_user: str = "lending"
    db_password: str = ""  # From .env (confidential)

    # Database SSL settings
    db_ssl_mode: str = "prefer"  # Options: disable, allow, prefer, require, verify-ca, verify-full
    db_ssl_cert: Optional[str] = None  # Path to client certificate
    db_ssl_key: Optional[str] = None  # Path to client key
    db_ssl_root_cert: Optional[str] = None  # Path to root certificate

    # JWT settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440

    # SMTP settings for loan notifications
    smtp_enabled: bool = False  # When disabled, emails are only logged
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None  # Confidential
    smtp_use_tls: bool = False
    smtp_timeout_seconds: int = 10
    mail_from: str = "Library <no-reply@library.local>"
    mail_workers: int = 2

    # Loan reminder sweep
    reminders_enabled: bool = True
    reminder_interval_hours: int = 24
    reminder_initial_delay_seconds: int = 30

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

settings = Settings()
