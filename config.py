"""
Configuration settings for the exam-oracle application.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".exam_oracle"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=DEFAULT_DATA_DIR,
        description="Directory holding the database and the session record",
    )
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy connection string (defaults to SQLite in data_dir)",
    )
    session_state_path: Path | None = Field(
        default=None,
        description="Persisted quiz session record (defaults to data_dir/quiz_state.json)",
    )

    # ========================================
    # Quiz Session
    # ========================================
    questions_per_session: int = Field(
        default=15,
        description="Maximum questions sampled per session",
    )
    seconds_per_question: int = Field(
        default=120,
        description="Countdown budget per question (2 minutes)",
    )
    tick_seconds: float = Field(
        default=1.0,
        description="Countdown tick interval",
    )
    autosave_every_ticks: int = Field(
        default=10,
        description="Persist the session record every N ticks",
    )
    impulse_threshold_ms: int = Field(
        default=1500,
        description="Advancing faster than this counts as an impulse click",
    )

    # ========================================
    # Marking Scheme
    # ========================================
    correct_marks: float = Field(
        default=2.0,
        description="Marks awarded per correct answer",
    )
    wrong_penalty: float = Field(
        default=0.66,
        description="Marks deducted per wrong answer (one third negative marking)",
    )

    # ========================================
    # Oracle (Prediction)
    # ========================================
    exam_date: date = Field(
        default=date(2026, 5, 25),
        description="Target exam date for the countdown signal",
    )
    profile_user_id: str = Field(
        default="user_1",
        description="Behavioral profile key (single-user local app)",
    )
    oracle_worker_enabled: bool = Field(
        default=True,
        description="Run the ensemble on a background worker (fallback model if False)",
    )
    oracle_timeout_seconds: float = Field(
        default=10.0,
        description="Maximum wait for a worker reply before degrading to the fallback",
    )
    simulation_runs: int = Field(
        default=500,
        description="Stress-test runs per ensemble prediction",
    )
    weight_monte_carlo: float = Field(
        default=0.50,
        description="Ensemble weight of the stochastic stress-test model",
    )
    weight_bayesian: float = Field(
        default=0.30,
        description="Ensemble weight of the uncertainty model",
    )
    weight_pattern: float = Field(
        default=0.20,
        description="Ensemble weight of the pattern-recognition model",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def resolved_database_url(self) -> str:
        """SQLAlchemy URL, defaulting to a SQLite file in data_dir."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir.expanduser() / 'oracle.db'}"

    def resolved_session_state_path(self) -> Path:
        """Location of the persisted quiz session record."""
        if self.session_state_path:
            return self.session_state_path.expanduser()
        return self.data_dir.expanduser() / "quiz_state.json"

    def get_ensemble_config(self) -> dict[str, object]:
        """Get the ensemble model configuration sent to the worker."""
        return {
            "simulation_runs": self.simulation_runs,
            "models": {
                "monte_carlo": {"weight": self.weight_monte_carlo},
                "bayesian": {"weight": self.weight_bayesian},
                "pattern": {"weight": self.weight_pattern},
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
