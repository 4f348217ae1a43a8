"""
utils.py

File I/O, validation and security checks for the Arabic OCR package.

Handles:
- Path sanitization against traversal and symlinks
- Extension and size enforcement
- Image and PDF loading into RGBA buffers
- UTF-8 text loading for correction-only runs
"""

import logging
from pathlib import Path
from typing import List, Union

import numpy as np
from PIL import Image

from . import config

logger = logging.getLogger(__name__)


class OCRFileError(Exception):
    """Raised when file validation or loading fails."""

    pass


class OCRSecurityError(Exception):
    """Raised when a security check fails (e.g., path traversal)."""

    pass


def sanitize_path(file_path: Union[str, Path]) -> Path:
    """
    Validate and resolve a file path.

    Raises:
        OCRSecurityError: On '..' components or symlinks.
        OCRFileError: If the path is missing or not a regular file.
    """
    raw = str(file_path)
    if ".." in Path(raw).parts:
        raise OCRSecurityError(f"Path traversal detected in: {raw}")

    if Path(raw).is_symlink():
        raise OCRSecurityError(f"Symlinks are not allowed: {raw}")

    path = Path(raw).resolve()
    if not path.exists():
        raise OCRFileError(f"File not found: {path}")

    if not path.is_file():
        raise OCRFileError(f"Not a regular file: {path}")

    return path


def validate_file(file_path: Path, allowed_extensions: List[str] = None) -> None:
    """
    Check extension, size and emptiness.

    Raises:
        OCRFileError: If any check fails.
    """
    if allowed_extensions is None:
        allowed_extensions = config.ALLOWED_EXTENSIONS

    ext = file_path.suffix.lower()
    if ext not in allowed_extensions:
        raise OCRFileError(
            f"Unsupported file extension '{ext}'. Allowed: {allowed_extensions}"
        )

    size = file_path.stat().st_size
    if size == 0:
        raise OCRFileError(f"File is empty: {file_path}")

    size_mb = size / (1024 * 1024)
    if size_mb > config.MAX_FILE_SIZE_MB:
        raise OCRFileError(
            f"File too large: {size_mb:.1f}MB exceeds "
            f"limit of {config.MAX_FILE_SIZE_MB}MB"
        )


def load_images(file_path: Union[str, Path], dpi: int = None) -> List[np.ndarray]:
    """
    Load page image(s) as RGBA uint8 arrays of shape (H, W, 4).

    PNG, JPEG, TIFF and BMP are read with Pillow (every frame of a
    multi-page TIFF becomes a page). PDFs are rasterized with pdf2image
    at ``dpi`` (config.TARGET_DPI by default).

    Raises:
        OCRFileError: If loading fails.
        OCRSecurityError: If path validation fails.
    """
    path = sanitize_path(file_path)
    validate_file(path)

    ext = path.suffix.lower()
    logger.info("Loading file: %s (type: %s)", path.name, ext)

    try:
        if ext == ".pdf":
            return _load_pdf_images(path, dpi or config.TARGET_DPI)
        return _load_image_frames(path)
    except (OCRFileError, OCRSecurityError):
        raise
    except Exception as e:
        raise OCRFileError(f"Failed to load image from {path.name}: {e}") from e


def _load_image_frames(path: Path) -> List[np.ndarray]:
    images = []
    with Image.open(path) as img:
        for frame in range(getattr(img, "n_frames", 1)):
            img.seek(frame)
            arr = np.array(img.convert("RGBA"))
            logger.info("Loaded image frame %d: %dx%d", frame + 1, arr.shape[1], arr.shape[0])
            images.append(arr)
    return images


def _load_pdf_images(path: Path, dpi: int) -> List[np.ndarray]:
    """Rasterize PDF pages; pdf2image cleans up its temporary files."""
    try:
        from pdf2image import convert_from_path
    except ImportError:
        raise OCRFileError(
            "pdf2image is required for PDF support. "
            "Install it with: pip install pdf2image"
        )

    try:
        pil_images = convert_from_path(str(path), dpi=dpi)
    except Exception as e:
        raise OCRFileError(f"Failed to convert PDF: {e}") from e

    images = []
    for i, pil_img in enumerate(pil_images):
        arr = np.array(pil_img.convert("RGBA"))
        logger.info("PDF page %d at %d dpi: %dx%d", i + 1, dpi, arr.shape[1], arr.shape[0])
        images.append(arr)

    if not images:
        raise OCRFileError(f"PDF produced no images: {path.name}")

    return images


def to_pil(image: np.ndarray) -> Image.Image:
    """RGBA/RGB/grayscale array to an RGB PIL image for the engines."""
    if image.ndim == 2:
        return Image.fromarray(image.astype(np.uint8)).convert("RGB")
    return Image.fromarray(np.ascontiguousarray(image[:, :, :3], dtype=np.uint8))


def load_text(file_path: Union[str, Path]) -> str:
    """Read a UTF-8 text file for correction without OCR."""
    path = sanitize_path(file_path)
    validate_file(path, config.TEXT_EXTENSIONS)
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise OCRFileError(f"Not valid UTF-8 text: {path.name}") from e
