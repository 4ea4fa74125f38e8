from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class StagedImage(BaseModel):
    """An uploaded image waiting in the staging directory."""
    model_config = ConfigDict(frozen=True)

    path: Path
    original_name: str
    generated_name: str
    mime_type: str
    size_bytes: int


class PdfArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    generated_id: str
    path: Path
    relative_path: str
    created_at: datetime


class CatalogRecord(BaseModel):
    """Metadata mirroring one PDF artifact, valid for ttlSeconds after createdAt."""
    model_config = ConfigDict(populate_by_name=True)

    record_id: Optional[str] = Field(default=None, alias="_id")
    originalName: str
    generatedId: str
    pdfPath: str
    createdAt: datetime
    ttlSeconds: int

    @property
    def expires_at(self) -> datetime:
        return _as_utc(self.createdAt) + timedelta(seconds=self.ttlSeconds)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return _as_utc(now) - _as_utc(self.createdAt) > timedelta(seconds=self.ttlSeconds)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "CatalogRecord":
        data = dict(document)
        if data.get("_id") is not None:
            data["_id"] = str(data["_id"])
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"record_id"})


class ConversionResponse(BaseModel):
    message: str
    pdfPath: str
    pdfFilename: str
    recordId: Optional[str] = None


def _as_utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
