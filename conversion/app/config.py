from pathlib import Path
import sys
from typing import List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[2]
SERVICE_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from config.shared_settings import shared_settings


class Settings(BaseSettings):
    """Configuration for the conversion service.

    Instances are immutable; every service receives one at construction.
    """

    # Service metadata
    SERVICE_NAME: str = shared_settings.CONVERSION_SERVICE_NAME
    SERVICE_VERSION: str = shared_settings.CONVERSION_SERVICE_VERSION
    APP_HOST: str = Field(
        default=shared_settings.CONVERSION_SERVICE_HOST,
        validation_alias=AliasChoices("HOST", "APP_HOST"),
    )
    APP_PORT: int = Field(
        default=shared_settings.CONVERSION_SERVICE_PORT,
        validation_alias=AliasChoices("PORT", "APP_PORT"),
    )
    APP_ENV: str = shared_settings.APP_ENV
    DEBUG: bool = Field(
        default=shared_settings.CONVERSION_DEBUG,
        validation_alias=AliasChoices("DEBUG", "APP_DEBUG"),
    )

    # Storage
    UPLOAD_DIR: Path = Field(
        default=Path(shared_settings.CONVERSION_UPLOAD_DIR),
        validation_alias=AliasChoices("UPLOAD_DIR", "UPLOADS_DIR"),
    )
    PDF_DIR: Path = Field(
        default=Path(shared_settings.CONVERSION_PDF_DIR),
        validation_alias=AliasChoices("PDF_DIR", "PDFS_DIR"),
    )
    ALLOWED_MIME_TYPES: List[str] = Field(default=["image/jpeg", "image/png"])
    MAX_FILE_SIZE_MB: int = Field(default=10, validation_alias="MAX_FILE_SIZE_MB")
    UPLOAD_CHUNK_SIZE: int = 64 * 1024

    # Rendering
    PAGE_SIZE: str = Field(default="LETTER", validation_alias="PAGE_SIZE")
    PAGE_MARGIN_PT: float = Field(default=72.0, validation_alias="PAGE_MARGIN_PT")

    # Retention
    RECORD_TTL_SECONDS: int = Field(
        default=shared_settings.CONVERSION_RECORD_TTL_SECONDS,
        validation_alias=AliasChoices("RECORD_TTL_SECONDS", "TTL_SECONDS"),
    )
    REAPER_ENABLED: bool = True
    REAPER_INTERVAL_SECONDS: int = shared_settings.CONVERSION_REAPER_INTERVAL_SECONDS
    STAGING_GRACE_SECONDS: int = 900

    # MongoDB catalog
    CATALOG_ENABLED: bool = True
    MONGODB_URI: str = Field(
        default=shared_settings.MONGODB_URI,
        validation_alias=AliasChoices("MONGODB_URI", "MONGO_URL"),
    )
    DATABASE_NAME: str = Field(
        default=shared_settings.DATABASE_NAME,
        validation_alias=AliasChoices("DATABASE_NAME", "MONGO_DB"),
    )
    COLLECTION_NAME: str = Field(
        default=shared_settings.CONVERSION_COLLECTION_NAME,
        validation_alias=AliasChoices("COLLECTION_NAME", "MONGO_COLLECTION"),
    )
    MONGO_TIMEOUT_MS: int = 2000

    # Downloads
    DOWNLOAD_REQUIRE_CATALOG_RECORD: bool = False

    # CORS
    CORS_ORIGINS: str = shared_settings.CONVERSION_CORS_ORIGINS
    CORS_ALLOW_CREDENTIALS: bool = True

    model_config = SettingsConfigDict(
        env_file=[str(SERVICE_DIR / ".env"), str(ROOT_DIR / ".env")],
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
        frozen=True,
    )

    @property
    def cors_origins_list(self) -> List[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def upload_dir_path(self) -> Path:
        return self._resolve_service_path(self.UPLOAD_DIR)

    @property
    def pdf_dir_path(self) -> Path:
        return self._resolve_service_path(self.PDF_DIR)

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

    @staticmethod
    def _resolve_service_path(path: Path) -> Path:
        path = Path(path)
        if path.is_absolute():
            return path

        parts = path.parts
        if parts and parts[0].lower() == "conversion":
            path = Path(*parts[1:]) if len(parts) > 1 else Path()

        return (SERVICE_DIR / path).resolve()


settings = Settings()
