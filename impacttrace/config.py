"""
Application configuration. Loads from environment variables.
Secrets and sensitive config must never be hardcoded.
"""

import os

from dotenv import load_dotenv

load_dotenv()
from functools import lru_cache
from typing import Optional


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


class Settings:
    """Application settings loaded from environment."""

    # App
    app_name: str = "ImpactTrace"
    debug: bool = False

    # Database (postgresql+psycopg for psycopg3; sqlite:// for local runs and tests)
    database_url: str = "postgresql+psycopg://localhost:5432/impacttrace_dev"
    db_connect_timeout: int = 10  # seconds

    # Matching: edits inside this window collapse to one matching pass
    match_debounce_seconds: float = 0.3

    # File store (uploaded evidence files)
    storage_base_url: str = ""
    storage_bucket: str = "evidence"
    storage_api_key: Optional[str] = None
    storage_timeout: float = 30.0

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.debug = os.getenv("DEBUG", "false").lower() == "true"

        default_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
        default_url = (
            f"postgresql+psycopg://{default_user}:"
            f"{os.getenv('PGPASSWORD', '')}@"
            f"{os.getenv('PGHOST', 'localhost')}:"
            f"{os.getenv('PGPORT', '5432')}/"
            f"{os.getenv('PGDATABASE', 'impacttrace_dev')}"
        )
        raw_url = os.getenv("DATABASE_URL", default_url)
        # Ensure psycopg3 driver if URL uses generic postgresql://
        if raw_url.startswith("postgresql://") and not raw_url.startswith("postgresql+psycopg"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
        self.database_url = raw_url
        self.db_connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", str(self.db_connect_timeout)))

        self.match_debounce_seconds = float(
            os.getenv("MATCH_DEBOUNCE_SECONDS", str(self.match_debounce_seconds))
        )

        self.storage_base_url = os.getenv("STORAGE_BASE_URL", "").rstrip("/")
        self.storage_bucket = os.getenv("STORAGE_BUCKET", self.storage_bucket)
        self.storage_api_key = os.getenv("STORAGE_API_KEY")
        self.storage_timeout = float(os.getenv("STORAGE_TIMEOUT", str(self.storage_timeout)))
