"""Configuration management for CRMRES.

Uses pydantic-settings to load configuration from environment variables.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> Path | None:
    """Search for .env file in common locations."""
    cwd = Path.cwd()
    check_dir = cwd
    for _ in range(5):
        if (check_dir / ".env").exists():
            return check_dir / ".env"
        parent = check_dir.parent
        if parent == check_dir:
            break
        check_dir = parent

    # Relative to this file (backend/src/crmres/config.py -> project root)
    project_root = Path(__file__).resolve().parent.parent.parent.parent
    if (project_root / ".env").exists():
        return project_root / ".env"

    return None


_env_file = _find_env_file()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_env_file) if _env_file else ".env",
        env_file_encoding="utf-8",
        env_prefix="CRMRES_",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================
    # Environment
    # =========================
    environment: Literal["development", "staging", "production"] = "development"

    # =========================
    # Database
    # =========================
    database_url: str = Field(default="sqlite:///crmres.db", repr=False)
    database_echo: bool = False

    # =========================
    # Logging
    # =========================
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # =========================
    # Resolution
    # =========================
    extra_personal_domains: str = ""
    orphan_fuzzy_threshold: int = Field(default=90, ge=0, le=100)
    bulk_batch_size: int = Field(default=500, ge=1)
    lock_timeout_seconds: float = Field(default=30.0, gt=0)

    @property
    def extra_personal_domains_list(self) -> list[str]:
        """Parse extra personal domains as a normalized list."""
        return [
            domain.strip().lower()
            for domain in self.extra_personal_domains.split(",")
            if domain.strip()
        ]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
