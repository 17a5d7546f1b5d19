"""Project configuration and paths.

Loads settings from config/settings.yaml and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# === Paths ===
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = PROJECT_ROOT / "data"

# Load .env from project root
load_dotenv(PROJECT_ROOT / ".env")


class DatabaseSettings(BaseModel):
    """Local SQLite store settings."""
    db_path: str = Field(
        default_factory=lambda: os.getenv(
            "DATABASE_PATH", str(DATA_DIR / "exchange.db")
        )
    )

    @property
    def db_abs_path(self) -> Path:
        """Resolve database path relative to project root."""
        p = Path(self.db_path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


class ApiSettings(BaseModel):
    """REST backend settings."""
    base_url: str = Field(
        default_factory=lambda: os.getenv("API_BASE_URL", "http://localhost:3001/api")
    )
    request_timeout: int = Field(
        default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30"))
    )
    max_retries: int = 3


class Settings(BaseModel):
    """Top-level application settings."""
    backend: str = "sqlite"  # sqlite | supabase | api
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    default_policy: str = "replacement"
    # Raw TargetPolicy presets, keyed by name; see bundle_engine.policy
    policies: dict[str, dict] = Field(default_factory=dict)
    operator_id: str = Field(default_factory=lambda: os.getenv("OPERATOR_ID", ""))

    @classmethod
    def load(cls, path: Path | None = None) -> Settings:
        """Load settings from config/settings.yaml, falling back to defaults."""
        settings_path = path or CONFIG_DIR / "settings.yaml"
        if settings_path.exists():
            with open(settings_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        return cls()


def get_supabase_credentials() -> tuple[str, str]:
    """Get Supabase URL and service key from environment."""
    url = os.getenv("SUPABASE_URL", "")
    key = os.getenv("SUPABASE_SERVICE_KEY", "")
    if not url or not key:
        raise ValueError(
            "SUPABASE_URL / SUPABASE_SERVICE_KEY must be set in .env. "
            "See config/.env.example."
        )
    return url, key


# Singleton settings instance
settings = Settings.load()
