import asyncio
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

from conversion.app.services.catalog_service import CatalogService
from conversion.app.services.retention_service import RetentionService
from conversion.tests.support import files_in, make_settings


class TestRetentionService(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.settings = make_settings(self.root, RECORD_TTL_SECONDS=3600, STAGING_GRACE_SECONDS=900)
        self.settings.pdf_dir_path.mkdir(parents=True)
        self.settings.upload_dir_path.mkdir(parents=True)
        self.now = datetime.now(timezone.utc)
        self.collection = MagicMock()
        self.collection.find_one.return_value = None
        self.collection.delete_many.return_value.deleted_count = 0
        self.catalog = CatalogService(self.settings, collection=self.collection)
        self.retention = RetentionService(self.settings, catalog=self.catalog)

    def tearDown(self):
        self._tmp.cleanup()

    def touch(self, directory: Path, name: str, age_seconds: int) -> Path:
        path = directory / name
        path.write_bytes(b"data")
        mtime = (self.now - timedelta(seconds=age_seconds)).timestamp()
        os.utime(path, (mtime, mtime))
        return path

    def test_expired_unreferenced_pdf_is_removed(self):
        self.touch(self.settings.pdf_dir_path, "old.pdf", 7200)
        self.touch(self.settings.pdf_dir_path, "fresh.pdf", 60)

        report = self.retention.sweep(self.now)

        self.assertEqual(report.pdfs_removed, 1)
        self.assertEqual(files_in(self.settings.pdf_dir_path), ["fresh.pdf"])

    def test_pdf_with_live_record_is_kept(self):
        self.touch(self.settings.pdf_dir_path, "kept.pdf", 7200)
        self.collection.find_one.return_value = {
            "originalName": "photo.jpg",
            "generatedId": "kept",
            "pdfPath": "pdfs/kept.pdf",
            "createdAt": self.now - timedelta(minutes=5),
            "ttlSeconds": 3600,
        }

        report = self.retention.sweep(self.now)

        self.assertEqual(report.pdfs_removed, 0)
        self.assertEqual(files_in(self.settings.pdf_dir_path), ["kept.pdf"])

    def test_catalog_failure_treats_file_as_unreferenced(self):
        self.touch(self.settings.pdf_dir_path, "old.pdf", 7200)
        self.collection.find_one.side_effect = RuntimeError("mongo down")
        self.collection.delete_many.side_effect = RuntimeError("mongo down")

        report = self.retention.sweep(self.now)

        self.assertEqual(report.pdfs_removed, 1)
        self.assertEqual(report.errors, 1)

    def test_expired_records_are_purged(self):
        self.collection.delete_many.return_value.deleted_count = 4

        report = self.retention.sweep(self.now)

        self.assertEqual(report.records_purged, 4)

    def test_stale_partial_and_staging_files_are_removed(self):
        self.touch(self.settings.pdf_dir_path, ".abc.pdf.part", 3600)
        self.touch(self.settings.pdf_dir_path, ".busy.pdf.part", 10)
        self.touch(self.settings.upload_dir_path, "abandoned.jpg", 3600)
        self.touch(self.settings.upload_dir_path, "in_flight.png", 10)

        report = self.retention.sweep(self.now)

        self.assertEqual(report.partials_removed, 1)
        self.assertEqual(report.staging_removed, 1)
        self.assertEqual(files_in(self.settings.pdf_dir_path), [".busy.pdf.part"])
        self.assertEqual(files_in(self.settings.upload_dir_path), ["in_flight.png"])

    def test_sweep_without_catalog(self):
        retention = RetentionService(self.settings)
        self.touch(self.settings.pdf_dir_path, "old.pdf", 7200)

        self.assertEqual(retention.sweep(self.now).pdfs_removed, 1)

    def test_missing_directories_are_tolerated(self):
        retention = RetentionService(make_settings(self.root / "nowhere"))
        report = retention.sweep(self.now)
        self.assertEqual(report.pdfs_removed + report.staging_removed, 0)

    def test_run_forever_stops_on_cancel(self):
        self.touch(self.settings.pdf_dir_path, "old.pdf", 7200)

        async def run_briefly():
            task = asyncio.create_task(self.retention.run_forever(3600))
            await asyncio.sleep(0.5)
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task

        asyncio.run(run_briefly())
        self.assertEqual(files_in(self.settings.pdf_dir_path), [])


if __name__ == '__main__':
    unittest.main()
