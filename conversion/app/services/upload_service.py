import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from fastapi import UploadFile

from ..config import Settings
from ..models.artifacts import StagedImage
from ..utils.errors import MissingFileError, SizeLimitError, StorageAccessError, UnsupportedTypeError
from ..utils.logging import logger

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
}


class UploadReceiver:
    """Validates an uploaded image and stages it for conversion."""

    def __init__(self, settings: Settings) -> None:
        self.allowed_mime_types = {mime.lower() for mime in settings.ALLOWED_MIME_TYPES}
        self.max_bytes = settings.max_file_size_bytes
        self.chunk_size = settings.UPLOAD_CHUNK_SIZE
        self.staging_root = settings.upload_dir_path

    async def stage(self, upload: Optional[UploadFile]) -> StagedImage:
        """Validate ``upload`` and copy it into the staging directory.

        Type and declared size are checked before anything touches the disk.
        The size limit is enforced again while streaming, since the declared
        size may be absent; an oversized or interrupted copy is deleted before
        the error propagates.
        """
        if upload is None or not upload.filename:
            raise MissingFileError(field="image")

        original_name = upload.filename
        mime_type = (upload.content_type or "").split(";")[0].strip().lower()

        if mime_type not in self.allowed_mime_types:
            logger.log_error("unsupported_file_type", {
                "filename": original_name,
                "mime_type": mime_type
            })
            raise UnsupportedTypeError(mime_type=mime_type)

        if upload.size is not None and upload.size > self.max_bytes:
            logger.log_error("file_too_large", {
                "filename": original_name,
                "size_bytes": upload.size,
                "max_bytes": self.max_bytes
            })
            raise SizeLimitError(size_bytes=upload.size, max_bytes=self.max_bytes)

        generated_name = f"{uuid.uuid4().hex}{MIME_EXTENSIONS.get(mime_type, '')}"
        self._ensure_staging_root()
        staging_path = self.staging_root / generated_name

        size_bytes = 0
        with self._staging_file(staging_path) as output:
            while True:
                chunk = await upload.read(self.chunk_size)
                if not chunk:
                    break
                size_bytes += len(chunk)
                if size_bytes > self.max_bytes:
                    logger.log_error("file_too_large", {
                        "filename": original_name,
                        "size_bytes": size_bytes,
                        "max_bytes": self.max_bytes
                    })
                    raise SizeLimitError(size_bytes=size_bytes, max_bytes=self.max_bytes)
                output.write(chunk)

        staged = StagedImage(
            path=staging_path,
            original_name=original_name,
            generated_name=generated_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
        )
        logger.log_upload_staged(generated_name, original_name, size_bytes)
        return staged

    def _ensure_staging_root(self) -> None:
        try:
            self.staging_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.log_error("staging_directory_unavailable", {
                "staging_root": str(self.staging_root),
                "error": str(exc)
            })
            raise StorageAccessError(path=str(self.staging_root)) from exc

    @contextmanager
    def _staging_file(self, staging_path: Path) -> Iterator:
        try:
            with staging_path.open("wb") as output:
                yield output
        except BaseException:
            staging_path.unlink(missing_ok=True)
            logger.log_step("staging_file_discarded", {"staging_path": str(staging_path)})
            raise
