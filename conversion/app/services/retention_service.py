import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from ..config import Settings
from ..utils.logging import logger
from .catalog_service import CatalogService


class SweepReport(BaseModel):
    records_purged: int = 0
    pdfs_removed: int = 0
    partials_removed: int = 0
    staging_removed: int = 0
    errors: int = 0


class RetentionService:
    """Periodic reaper bounding the lifetime of PDFs, records and leftovers.

    Mongo's TTL index expires catalog records on its own schedule; this sweep
    purges whatever it has not reached yet and deletes every PDF older than
    the TTL that no live record still refers to. Stale staging and partial
    files from interrupted requests are removed after a grace period.
    """

    def __init__(self, settings: Settings, catalog: Optional[CatalogService] = None) -> None:
        self.ttl_seconds = settings.RECORD_TTL_SECONDS
        self.grace_seconds = settings.STAGING_GRACE_SECONDS
        self.output_root = settings.pdf_dir_path
        self.staging_root = settings.upload_dir_path
        self.catalog = catalog

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or datetime.now(timezone.utc)
        now_ts = now.timestamp()
        report = SweepReport()

        if self.catalog is not None and self.catalog.available:
            try:
                report.records_purged = self.catalog.purge_expired(now)
            except Exception as exc:
                report.errors += 1
                logger.log_warning("catalog_purge_failed", {"error": str(exc)})

        if self.output_root.is_dir():
            for path in self.output_root.iterdir():
                if path.name.endswith(".part"):
                    if self._older_than(path, now_ts, self.grace_seconds):
                        report.partials_removed += self._remove(path, report)
                elif path.suffix == ".pdf":
                    if self._older_than(path, now_ts, self.ttl_seconds) and not self._referenced(path, now):
                        report.pdfs_removed += self._remove(path, report)

        if self.staging_root.is_dir():
            for path in self.staging_root.iterdir():
                if path.is_file() and self._older_than(path, now_ts, self.grace_seconds):
                    report.staging_removed += self._remove(path, report)

        logger.log_sweep(report.model_dump())
        return report

    async def run_forever(self, interval_seconds: float) -> None:
        logger.log_step("retention_reaper_started", {"interval_seconds": interval_seconds})
        try:
            while True:
                started = time.time()
                try:
                    await run_in_threadpool(self.sweep)
                except Exception as exc:
                    logger.log_error("retention_sweep_failed", {"error": str(exc)})
                await asyncio.sleep(max(0.0, interval_seconds - (time.time() - started)))
        except asyncio.CancelledError:
            logger.log_step("retention_reaper_stopped")
            raise

    def _referenced(self, path: Path, now: datetime) -> bool:
        if self.catalog is None or not self.catalog.available:
            return False
        try:
            return self.catalog.lookup(path.stem, now=now) is not None
        except Exception as exc:
            logger.log_warning("catalog_lookup_failed", {"path": str(path), "error": str(exc)})
            return False

    @staticmethod
    def _older_than(path: Path, now_ts: float, seconds: int) -> bool:
        try:
            return now_ts - path.stat().st_mtime > seconds
        except FileNotFoundError:
            return False

    @staticmethod
    def _remove(path: Path, report: SweepReport) -> int:
        try:
            path.unlink()
        except FileNotFoundError:
            return 0
        except OSError as exc:
            report.errors += 1
            logger.log_error("retention_remove_failed", {"path": str(path), "error": str(exc)})
            return 0
        logger.log_step("retention_removed", {"path": str(path)})
        return 1
