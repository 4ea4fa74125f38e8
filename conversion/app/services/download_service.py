import os
import stat
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from ..config import Settings
from ..utils.errors import (
    ArtifactPermissionError,
    InvalidIdentifierError,
    NotFoundError,
    StorageAccessError,
)
from ..utils.logging import logger
from .catalog_service import CatalogService

STREAM_CHUNK_SIZE = 64 * 1024


def validate_identifier(filename: str) -> str:
    """Traversal guard for requested download names.

    Runs before any filesystem access, so a hostile name is rejected the same
    way whether or not a matching file exists.
    """
    if not filename or not filename.strip():
        raise InvalidIdentifierError(reason="empty")
    separators = {"/", "\\", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    if any(separator in filename for separator in separators):
        raise InvalidIdentifierError(reason="path_separator")
    if ".." in filename:
        raise InvalidIdentifierError(reason="parent_reference")
    if "\x00" in filename:
        raise InvalidIdentifierError(reason="null_byte")
    # Partial writes are hidden dot files; only finished PDFs are served.
    if filename.startswith("."):
        raise InvalidIdentifierError(reason="hidden_name")
    if not filename.endswith(".pdf"):
        raise InvalidIdentifierError(reason="not_pdf")
    return filename


class DownloadResolver:
    """Maps a requested PDF name to a readable file in the output directory."""

    def __init__(self, settings: Settings, catalog: Optional[CatalogService] = None) -> None:
        self.output_root = settings.pdf_dir_path
        self.require_record = settings.DOWNLOAD_REQUIRE_CATALOG_RECORD
        self.catalog = catalog

    def resolve(self, filename: str) -> Path:
        validate_identifier(filename)
        path = self.output_root / filename

        try:
            file_stat = os.stat(path)
        except FileNotFoundError:
            logger.log_error("pdf_not_found", {"filename": filename})
            raise NotFoundError(filename=filename)
        except PermissionError:
            logger.log_error("pdf_permission_denied", {"filename": filename})
            raise ArtifactPermissionError(filename=filename)
        except OSError as exc:
            logger.log_error("pdf_stat_failed", {"filename": filename, "error": str(exc)})
            raise StorageAccessError(filename=filename) from exc

        if not stat.S_ISREG(file_stat.st_mode):
            logger.log_error("pdf_not_regular_file", {"filename": filename})
            raise NotFoundError(filename=filename)

        if not os.access(path, os.R_OK):
            logger.log_error("pdf_permission_denied", {"filename": filename})
            raise ArtifactPermissionError(filename=filename)

        if self.require_record and not self._has_live_record(filename):
            logger.log_error("pdf_record_expired", {"filename": filename})
            raise NotFoundError(filename=filename, reason="record_expired")

        return path.resolve()

    def remove(self, filename: str) -> None:
        """Delete a PDF and its catalog record before the TTL does."""
        path = self.resolve(filename)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFoundError(filename=filename)
        except PermissionError:
            raise ArtifactPermissionError(filename=filename)
        except OSError as exc:
            raise StorageAccessError(filename=filename) from exc

        if self.catalog is not None and self.catalog.available:
            try:
                self.catalog.delete(Path(filename).stem)
            except Exception as exc:
                logger.log_warning("catalog_delete_failed", {"filename": filename, "error": str(exc)})

        logger.log_step("pdf_removed", {"filename": filename})

    def open_stream(self, path: Path) -> Iterator[bytes]:
        """Open ``path`` now and return an iterator over its contents.

        Opening eagerly keeps open failures on the error-mapping side of the
        response; anything that fails once bytes are flowing can only be logged.
        """
        try:
            handle = open(path, "rb")
        except FileNotFoundError:
            raise NotFoundError(filename=path.name)
        except PermissionError:
            raise ArtifactPermissionError(filename=path.name)
        except OSError as exc:
            raise StorageAccessError(filename=path.name) from exc
        return self._iter_chunks(handle, path)

    def _iter_chunks(self, handle: BinaryIO, path: Path) -> Iterator[bytes]:
        sent = 0
        try:
            while True:
                chunk = handle.read(STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                sent += len(chunk)
                yield chunk
        except OSError as exc:
            logger.log_error("pdf_stream_failed", {
                "path": str(path),
                "bytes_sent": sent,
                "error": str(exc)
            })
            return
        finally:
            handle.close()

        logger.log_step("pdf_stream_completed", {"path": str(path), "bytes_sent": sent})

    def _has_live_record(self, filename: str) -> bool:
        if self.catalog is None:
            return False
        try:
            return self.catalog.lookup(Path(filename).stem) is not None
        except Exception as exc:
            logger.log_warning("catalog_lookup_failed", {"filename": filename, "error": str(exc)})
            return False
