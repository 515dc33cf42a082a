import logging
import os
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

THUMBNAIL_SIZES = {"small": 150, "medium": 300, "large": 600}
THUMBNAIL_QUALITY = 80


class ImageProcessingError(Exception):
    pass


def read_dimensions(file_path: str) -> Tuple[Optional[int], Optional[int]]:
    """Width and height of an image on disk, or (None, None) when Pillow can't read it (e.g. SVG)."""
    try:
        with Image.open(file_path) as img:
            return img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        logger.info("Could not read image dimensions for %s: %s", file_path, exc)
        return None, None


def make_thumbnail(file_path: str, dest_path: str, max_side: int) -> Tuple[int, int]:
    """Write a JPEG fitting inside a max_side box; images already smaller keep their size."""
    try:
        with Image.open(file_path) as img:
            thumbnail = img.copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ImageProcessingError(str(exc)) from exc

    thumbnail.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)
    if thumbnail.mode not in ("RGB", "L"):
        thumbnail = thumbnail.convert("RGB")
    os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
    thumbnail.save(dest_path, "JPEG", quality=THUMBNAIL_QUALITY, optimize=True)
    return thumbnail.size
