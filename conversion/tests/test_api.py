import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from conversion.app.main import create_app
from conversion.tests.support import files_in, image_bytes, make_settings, pdf_page_count


class TestConversionAPI(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.settings = make_settings(self.root)
        self.collection = MagicMock()
        self.collection.insert_one.return_value.inserted_id = "65f0c0ffee"
        self.app = create_app(self.settings, catalog_collection=self.collection)
        self.client = TestClient(self.app)

    def tearDown(self):
        self._tmp.cleanup()

    def upload(self, data: bytes, filename: str = "photo.jpg", content_type: str = "image/jpeg"):
        return self.client.post("/api/convert", files={"image": (filename, data, content_type)})

    def test_upload_then_download_round_trip(self):
        response = self.upload(image_bytes("JPEG", size=(1600, 1200)))

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["message"], "Image uploaded and converted successfully")
        self.assertTrue(body["pdfFilename"].endswith(".pdf"))
        self.assertEqual(body["pdfPath"], f"pdfs/{body['pdfFilename']}")
        self.assertEqual(body["recordId"], "65f0c0ffee")
        self.assertEqual(files_in(self.settings.upload_dir_path), [])

        download = self.client.get(f"/api/convert/download/{body['pdfFilename']}")

        self.assertEqual(download.status_code, 200)
        self.assertTrue(download.content.startswith(b"%PDF-"))
        self.assertEqual(pdf_page_count(download.content), 1)
        self.assertEqual(download.headers["content-type"], "application/pdf")
        self.assertEqual(
            download.headers["content-disposition"],
            f'attachment; filename="{body["pdfFilename"]}"'
        )

    def test_catalog_record_mirrors_artifact(self):
        response = self.upload(image_bytes("PNG"), "scan.png", "image/png")

        generated_id = response.json()["pdfFilename"][:-4]
        document = self.collection.insert_one.call_args[0][0]
        self.assertEqual(document["originalName"], "scan.png")
        self.assertEqual(document["generatedId"], generated_id)
        self.assertEqual(document["pdfPath"], f"pdfs/{generated_id}.pdf")

    def test_catalog_failure_does_not_fail_upload(self):
        self.collection.insert_one.side_effect = RuntimeError("mongo down")

        response = self.upload(image_bytes("JPEG"))

        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.json()["recordId"])
        self.assertTrue((self.settings.pdf_dir_path / response.json()["pdfFilename"]).exists())

    def test_uploads_get_distinct_filenames(self):
        names = {self.upload(image_bytes("JPEG")).json()["pdfFilename"] for _ in range(3)}
        self.assertEqual(len(names), 3)

    def test_oversized_upload_is_rejected_and_nothing_is_written(self):
        data = b"\xff\xd8\xff" + b"\x00" * (15 * 1024 * 1024)

        response = self.upload(data)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "SizeLimitError")
        self.assertIn("10 MB", response.json()["detail"])
        self.assertEqual(files_in(self.settings.upload_dir_path), [])
        self.assertEqual(files_in(self.settings.pdf_dir_path), [])

    def test_unsupported_type_is_rejected(self):
        response = self.upload(b"GIF89a", "anim.gif", "image/gif")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "UnsupportedTypeError")
        self.assertEqual(files_in(self.settings.pdf_dir_path), [])

    def test_missing_file_is_rejected(self):
        response = self.client.post("/api/convert", data={"other": "value"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "MissingFileError")

    def test_conversion_failure_returns_500_and_cleans_up(self):
        response = self.upload(b"\x89PNG\r\n\x1a\n not actually a png", "fake.png", "image/png")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "ConversionError")
        self.assertEqual(files_in(self.settings.upload_dir_path), [])
        self.assertEqual(files_in(self.settings.pdf_dir_path), [])

    def test_traversal_download_is_rejected(self):
        response = self.client.get("/api/convert/download/..%2F..%2Fetc%2Fpasswd")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "InvalidIdentifierError")

    def test_partial_pdf_is_not_downloadable(self):
        self.settings.pdf_dir_path.mkdir(parents=True)
        (self.settings.pdf_dir_path / ".0f3c9a.pdf.part").write_bytes(b"%PDF-1.4 trunc")

        response = self.client.get("/api/convert/download/.0f3c9a.pdf.part")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "InvalidIdentifierError")

    def test_missing_download_is_404(self):
        response = self.client.get("/api/convert/download/missing.pdf")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "NotFoundError")

    def test_unreadable_download_is_403(self):
        self.settings.pdf_dir_path.mkdir(parents=True)
        (self.settings.pdf_dir_path / "locked.pdf").write_bytes(b"%PDF-1.4")

        with patch("conversion.app.services.download_service.os.access", return_value=False):
            response = self.client.get("/api/convert/download/locked.pdf")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"], "PermissionError")

    def test_delete_removes_pdf(self):
        filename = self.upload(image_bytes("JPEG")).json()["pdfFilename"]

        self.assertEqual(self.client.delete(f"/api/convert/download/{filename}").status_code, 204)
        self.assertEqual(self.client.get(f"/api/convert/download/{filename}").status_code, 404)

    def test_health(self):
        response = self.client.get("/api/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")
        self.assertTrue(response.json()["catalog_connected"])

    def test_health_reports_disabled_catalog(self):
        app = create_app(make_settings(self.root, CATALOG_ENABLED=False), catalog_collection=self.collection)

        response = TestClient(app).get("/api/health")

        self.assertFalse(response.json()["catalog_connected"])

    def test_lifespan_prepares_storage_and_catalog(self):
        with TestClient(create_app(self.settings, catalog_collection=self.collection)) as client:
            self.assertEqual(client.get("/").status_code, 200)
            self.assertTrue(self.settings.upload_dir_path.is_dir())
            self.assertTrue(self.settings.pdf_dir_path.is_dir())

        ttl_index = self.collection.create_index.call_args_list[0]
        self.assertEqual(ttl_index.kwargs["expireAfterSeconds"], 3600)


if __name__ == '__main__':
    unittest.main()
