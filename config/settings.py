#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings

from core.chronicle.config import ChronicleConfig, GenerationMode


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # ========== Application ==========
    app_name: str = "Chronicle"
    app_version: str = "1.0.0"
    environment: str = "development"  # development | production

    # ========== Security ==========
    # Shared secret for the watchdog endpoints (cron). Empty = reject every caller.
    cron_secret: str = ""

    # CORS origins (comma-separated in env, parsed to list)
    cors_origins: str = ""  # Empty = use default dev origins

    rate_limit: str = "60/minute"

    # ========== LLM Provider ==========
    # Any OpenAI-compatible endpoint. Empty = mock client (development only)
    llm_base_url: str = ""
    llm_api_key: str = ""
    primary_model: str = "claude-sonnet-4-20250514"
    fallback_model: str = "gpt-4o"
    llm_timeout_seconds: float = 120.0

    # ========== Database ==========
    database_dir: Path = BASE_DIR / "data"
    chronicle_db_name: str = "chronicle.db"

    # ========== Watchdog ==========
    stale_timeout_minutes: int = 5
    max_auto_resume_attempts: int = 20
    max_jobs_per_run: int = 10
    critical_staleness_multiplier: int = 3
    stale_job_cleanup_hours: int = 1

    # ========== Jobs ==========
    daily_job_limit: int = 5  # Per owner per UTC day
    default_mode: GenerationMode = GenerationMode.POLISHED

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env that aren't defined in model

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.database_dir.mkdir(exist_ok=True, parents=True)

    @property
    def chronicle_db_path(self) -> str:
        return str(self.database_dir / self.chronicle_db_name)

    def get_cors_origins(self) -> list:
        """Get CORS origins as a list. Falls back to dev defaults if empty."""
        if self.cors_origins:
            return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        # Dev defaults
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8000",
            "http://127.0.0.1:8000",
        ]

    def to_engine_config(self, **overrides) -> ChronicleConfig:
        """Engine constants; the engine itself never reads the environment."""
        values = dict(
            primary_model=self.primary_model,
            fallback_model=self.fallback_model,
            agent_timeout_seconds=self.llm_timeout_seconds,
            stale_timeout_minutes=self.stale_timeout_minutes,
            max_auto_resume_attempts=self.max_auto_resume_attempts,
            max_jobs_per_run=self.max_jobs_per_run,
            critical_staleness_multiplier=self.critical_staleness_multiplier,
            stale_job_cleanup_hours=self.stale_job_cleanup_hours,
            daily_job_limit=self.daily_job_limit,
            default_mode=self.default_mode,
        )
        values.update(overrides)
        return ChronicleConfig(**values)


# Global settings instance
settings = Settings()
