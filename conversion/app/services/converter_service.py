"""Render a staged image into a single-page PDF on durable storage."""

import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator, NamedTuple, Tuple

from PIL import Image, ImageOps
from reportlab.lib.pagesizes import A4, LEGAL, LETTER
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..config import Settings
from ..models.artifacts import PdfArtifact, StagedImage
from ..utils.errors import ConversionError, StorageAccessError
from ..utils.logging import logger

PAGE_SIZES = {
    "LETTER": LETTER,
    "A4": A4,
    "LEGAL": LEGAL,
}

# Pillow format names accepted for each declared MIME type
PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
}


class Placement(NamedTuple):
    x: float
    y: float
    width: float
    height: float


def fit_within(image_width: float, image_height: float,
               box_x: float, box_y: float, box_width: float, box_height: float) -> Placement:
    """Scale an image into a box, preserving aspect ratio, centered on both axes."""
    if image_width <= 0 or image_height <= 0:
        raise ValueError("image dimensions must be positive")
    if box_width <= 0 or box_height <= 0:
        raise ValueError("printable area must be positive")

    scale = min(box_width / image_width, box_height / image_height)
    width = image_width * scale
    height = image_height * scale
    return Placement(
        x=box_x + (box_width - width) / 2,
        y=box_y + (box_height - height) / 2,
        width=width,
        height=height,
    )


def remove_quietly(path: Path, role: str) -> None:
    """Best-effort delete used on failure paths; never masks the original error."""
    try:
        path.unlink()
        logger.log_step("cleanup_removed", {"role": role, "path": str(path)})
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.log_error("cleanup_failed", {"role": role, "path": str(path), "error": str(exc)})


class ConverterService:
    """Image to PDF converter writing into the configured output directory."""

    def __init__(self, settings: Settings) -> None:
        page_size = settings.PAGE_SIZE.upper()
        if page_size not in PAGE_SIZES:
            raise ValueError(f"Unsupported page size: {settings.PAGE_SIZE}")
        self.page_size: Tuple[float, float] = PAGE_SIZES[page_size]
        self.margin = settings.PAGE_MARGIN_PT
        self.output_root = settings.pdf_dir_path

    def convert(self, staging_path: Path, original_name: str, generated_name: str, mime_type: str) -> str:
        """Convert one staged image and return the PDF path relative to the service root.

        The staging file is consumed either way. On failure the partial PDF is
        removed as well and the original exception propagates unchanged.
        """
        start_time = time.time()
        staging_path = Path(staging_path)
        pdf_filename = f"{Path(generated_name).stem}.pdf"
        final_path = self.output_root / pdf_filename
        relative_path = f"{self.output_root.name}/{pdf_filename}"

        logger.log_step("conversion_started", {
            "original_name": original_name,
            "staging_path": str(staging_path),
            "mime_type": mime_type,
            "target": str(final_path)
        })

        with self._staged_input(staging_path):
            self.ensure_output_root()
            with self._partial_output(final_path) as sink:
                self._render(staging_path, mime_type, sink)

        logger.log_conversion_completed(Path(pdf_filename).stem, relative_path, time.time() - start_time)
        return relative_path

    def convert_staged(self, staged: StagedImage) -> PdfArtifact:
        relative_path = self.convert(staged.path, staged.original_name, staged.generated_name, staged.mime_type)
        pdf_filename = Path(relative_path).name
        return PdfArtifact(
            generated_id=Path(pdf_filename).stem,
            path=self.output_root / pdf_filename,
            relative_path=relative_path,
            created_at=datetime.now(timezone.utc),
        )

    def ensure_output_root(self) -> None:
        try:
            self.output_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.log_error("output_directory_unavailable", {
                "output_root": str(self.output_root),
                "error": str(exc)
            })
            raise StorageAccessError(path=str(self.output_root)) from exc

    def _render(self, staging_path: Path, mime_type: str, sink: BinaryIO) -> None:
        page_width, page_height = self.page_size

        with Image.open(staging_path) as opened:
            if opened.format not in PIL_FORMATS.values():
                raise ConversionError(reason="unsupported_image_format", format=opened.format)
            if PIL_FORMATS.get(mime_type) != opened.format:
                logger.log_warning("mime_type_mismatch", {
                    "declared": mime_type,
                    "detected": opened.format
                })

            image = ImageOps.exif_transpose(opened) or opened
            if image.mode not in ("RGB", "RGBA", "L"):
                has_alpha = "A" in image.mode or "transparency" in image.info
                image = image.convert("RGBA" if has_alpha else "RGB")

            image_width, image_height = image.size
            if image_width == 0 or image_height == 0:
                raise ConversionError(reason="empty_image")

            placement = fit_within(
                image_width,
                image_height,
                self.margin,
                self.margin,
                page_width - 2 * self.margin,
                page_height - 2 * self.margin,
            )

            document = canvas.Canvas(sink, pagesize=self.page_size)
            document.drawImage(
                ImageReader(image),
                placement.x,
                placement.y,
                width=placement.width,
                height=placement.height,
                mask="auto" if image.mode == "RGBA" else None,
            )
            document.showPage()
            document.save()

    @contextmanager
    def _staged_input(self, staging_path: Path) -> Iterator[Path]:
        try:
            yield staging_path
        except BaseException as exc:
            logger.log_error("conversion_failed", {
                "staging_path": str(staging_path),
                "error": str(exc),
                "error_type": type(exc).__name__
            })
            remove_quietly(staging_path, "staging")
            raise

        try:
            staging_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.log_warning("staging_cleanup_failed", {
                "staging_path": str(staging_path),
                "error": str(exc)
            })

    @contextmanager
    def _partial_output(self, final_path: Path) -> Iterator[BinaryIO]:
        # Readers only ever see final_path after the fsync'd rename.
        partial_path = final_path.with_name(f".{final_path.name}.part")
        try:
            with partial_path.open("wb") as sink:
                yield sink
                sink.flush()
                os.fsync(sink.fileno())
            os.replace(partial_path, final_path)
        except BaseException:
            remove_quietly(partial_path, "partial_output")
            raise
