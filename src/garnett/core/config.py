"""
Configuration management for the Garnett course advisor.
"""

from typing import Optional

from dotenv import load_dotenv
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Export .env values for clients that read os.environ directly (OpenAI)
load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Garnett"
    debug: bool = False
    version: str = "1.0.0"

    # Database
    database_url: Optional[str] = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "garnett"
    postgres_user: str = "postgres"
    postgres_password: str = ""

    # Endpoint response cache
    redis_url: str = "redis://localhost:6379"

    # Language model
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    # Review cache (RateMyProfessor pages)
    review_cache_max_size: int = 1500
    review_cache_ttl: float = 24 * 60 * 60

    # Scraping
    scrape_concurrency: int = 3
    scrape_timeout: float = 8.0
    scrape_batch_delay: float = 0.3
    user_agent: str = "Mozilla/5.0"

    # Conversation
    stream_chunk_delay: float = 0.0
    history_window: int = 8

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @model_validator(mode="after")
    def assemble_db_connection(self) -> "Settings":
        if not self.database_url:
            self.database_url = (
                f"postgresql://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_database}"
            )
        return self


# Global settings instance
settings = Settings()