"""Shared configuration definitions for all microservices."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore[import-not-found]


class SharedSettings(BaseSettings):
    """Global defaults and environment-driven overrides for all services."""

    # Environment
    APP_ENV: str = "development"

    # Conversion service defaults
    CONVERSION_SERVICE_NAME: str = "DocumentAI Conversion Agent"
    CONVERSION_SERVICE_VERSION: str = "1.0.0"
    CONVERSION_SERVICE_HOST: str = "0.0.0.0"
    CONVERSION_SERVICE_PORT: int = 5000
    CONVERSION_DEBUG: bool = True
    CONVERSION_UPLOAD_DIR: str = str(Path("conversion") / "uploads")
    CONVERSION_PDF_DIR: str = str(Path("conversion") / "pdfs")
    CONVERSION_CORS_ORIGINS: str = "*"

    # Retention defaults
    CONVERSION_RECORD_TTL_SECONDS: int = 3600
    CONVERSION_REAPER_INTERVAL_SECONDS: int = 300

    # MongoDB defaults
    MONGODB_URI: str = "mongodb://localhost:27017/"
    DATABASE_NAME: str = "DocumentAi"
    CONVERSION_COLLECTION_NAME: str = "conversions"

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )


shared_settings = SharedSettings()
