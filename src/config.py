"""Application configuration management."""

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Settings
    app_name: str = "Precast QC - Piece Inspection API"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # API Settings
    api_v1_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Seed the in-memory store with demo workspaces, forms and pieces
    seed_demo_data: bool = Field(
        default=True,
        description="Load demo data into the in-memory store on startup",
    )

    # Client Settings
    api_base_url: str = Field(
        default="http://127.0.0.1:8000",
        description="Base URL the inspection client talks to",
    )
    http_timeout: float = Field(default=30.0, description="Client request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="QC_",
        env_file=str(Path(__file__).resolve().parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
