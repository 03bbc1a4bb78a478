"""
Application configuration.

Settings are read once, explicitly, with Settings.from_env() and then handed
to the services that need them (token signer, notifier, upload service, app
factory). Nothing reads the environment after start-up.
"""

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Settings(BaseModel):
    """Runtime settings for the spreadsheet analytics API"""

    environment: str = "production"
    database_url: str = "sqlite:///" + os.path.join(BASE_DIR, "analytics.db")
    jwt_secret: str = "change-me"
    token_ttl_days: int = 7

    # Uploads
    upload_dir: str = os.path.join(BASE_DIR, "uploads")
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_extensions: tuple = (".xlsx", ".xls")

    # Logging
    log_dir: str = os.path.join(BASE_DIR, "logs")

    # Invitation e-mails
    frontend_url: str = "http://localhost:3000"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    from_name: str = "Spreadsheet Analytics"
    from_email: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> "Settings":
        """
        Build settings from environment variables, loading a .env file first.

        Args:
            environ: Mapping to read instead of os.environ (used by tests)
            dotenv_path: Explicit .env location; python-dotenv searches upwards when None

        Returns:
            Settings: Populated settings, defaults kept for unset variables
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        values = {}
        mapping = {
            "environment": "APP_ENV",
            "database_url": "DATABASE_URL",
            "jwt_secret": "JWT_SECRET",
            "token_ttl_days": "TOKEN_TTL_DAYS",
            "upload_dir": "UPLOAD_DIR",
            "max_upload_bytes": "MAX_UPLOAD_BYTES",
            "log_dir": "LOG_DIR",
            "frontend_url": "FRONTEND_URL",
            "smtp_host": "SMTP_HOST",
            "smtp_port": "SMTP_PORT",
            "smtp_user": "SMTP_USER",
            "smtp_password": "SMTP_PASS",
            "from_name": "FROM_NAME",
            "from_email": "FROM_EMAIL",
        }
        for field, env_name in mapping.items():
            value = environ.get(env_name)
            if value not in (None, ""):
                values[field] = value
        return cls(**values)
