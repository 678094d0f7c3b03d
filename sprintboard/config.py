"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the sprint board.

    Values are loaded from environment variables (prefixed ``SPRINTBOARD_``)
    or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SPRINTBOARD_",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──
    environment: str = Field(default="development", description="development | staging | production")
    log_level: str = Field(default="INFO", description="Python logging level")

    # ── Persistence ──
    database_url: str = Field(
        default="sqlite+aiosqlite:///./sprintboard.db",
        description="SQLAlchemy async URL (postgresql+asyncpg://... in production)",
    )
    db_pool_size: int = Field(default=10, ge=1, description="Connection pool size (PostgreSQL only)")
    db_max_overflow: int = Field(default=20, ge=0, description="Extra connections beyond the pool (PostgreSQL only)")
    dashboard_url: str = Field(default="http://localhost:8000", description="Base URL of the sprint board API")

    # ── Analysis service (Ollama) ──
    ollama_enabled: bool = Field(default=False, description="Enable the sprint analysis integration")
    ollama_base_url: str = Field(default="http://localhost:11434", description="Ollama server URL")
    ollama_model: str = Field(default="llama3.2", description="Ollama model name")
    ollama_timeout_seconds: float = Field(default=120.0, gt=0, description="Read timeout for one analysis call")

    # ── Timeline ──
    timeline_width: int = Field(default=800, description="Total chart width in pixels, label column included")
    label_width: int = Field(default=220, description="Width of the task label column in pixels")
    min_bar_width: float = Field(default=4.0, description="Smallest width a task bar may take")

    # ── Sprints ──
    default_sprint_length_days: int = Field(default=14, ge=1, description="Fallback sprint length")

    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgresql")

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def chart_width(self) -> int:
        """Width available to the bar track once the label column is removed."""
        return max(0, self.timeline_width - self.label_width)

    @property
    def has_analysis(self) -> bool:
        return bool(self.ollama_enabled and self.ollama_base_url)


# Singleton instance — import this everywhere
settings = Settings()
