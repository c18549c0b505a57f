"""Configuration settings for the citation tracker."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    db_path: Path = Path("data") / "tracker.db"
    db_url: str | None = None
    db_echo: bool = False

    # Answer engine
    api_url: str = "https://api.perplexity.ai"
    api_key: str | None = None
    default_model: str = "sonar"

    # Timeouts (seconds)
    request_timeout: float = 60.0

    # Delay between answer-engine calls in a batch (seconds)
    batch_delay_seconds: float = 0.5

    log_level: str = "WARNING"

    @property
    def async_database_url(self) -> str:
        """Async SQLAlchemy database URL."""
        if self.db_url:
            return self.db_url
        return f"sqlite+aiosqlite:///{self.db_path}"

    class Config:
        env_prefix = "CITETRACK_"
        env_file = ".env"


# Global settings instance
settings = Settings()
