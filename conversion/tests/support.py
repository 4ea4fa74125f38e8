import io
import re
from pathlib import Path

from PIL import Image

from conversion.app.config import Settings


def make_settings(root: Path, **overrides) -> Settings:
    values = {
        "UPLOAD_DIR": str(root / "uploads"),
        "PDF_DIR": str(root / "pdfs"),
        "REAPER_ENABLED": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def image_bytes(fmt: str = "JPEG", size=(400, 300), mode: str = "RGB", color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def pdf_page_count(data: bytes) -> int:
    return len(re.findall(rb"/Type\s*/Page\b", data))


def files_in(directory: Path) -> list:
    if not directory.exists():
        return []
    return sorted(path.name for path in directory.iterdir())
