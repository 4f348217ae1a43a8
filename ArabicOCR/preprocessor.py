"""
preprocessor.py

OpenCV/numpy image preprocessing tuned for Arabic legal scans.

Images are RGBA uint8 arrays of shape (H, W, 4). Every filter returns a
new array with the same height and width; alpha is never touched and
nothing is resized or cropped. Filters that look at neighbourhoods leave
the 1-pixel border as it was.

If a pipeline run fails, the original image is returned unchanged:
OCR on a raw scan beats no OCR at all.
"""

import logging
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from . import config
from .schemas import ImageQuality, PreprocessingOptions

logger = logging.getLogger(__name__)


def to_rgba(image: np.ndarray) -> np.ndarray:
    """Promote grayscale or RGB input to RGBA. RGBA input is copied."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.ndim == 3 and image.shape[2] == 1:
        return cv2.cvtColor(np.ascontiguousarray(image[:, :, 0]), cv2.COLOR_GRAY2RGBA)
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2RGBA)
    if image.ndim == 3 and image.shape[2] == 4:
        return image.copy()
    raise ValueError(f"Unsupported image shape: {image.shape}")


def luminance(image: np.ndarray) -> np.ndarray:
    """Float grayscale from RGB(A) using OpenCV luma weights."""
    code = cv2.COLOR_RGBA2GRAY if image.shape[2] == 4 else cv2.COLOR_RGB2GRAY
    return cv2.cvtColor(np.ascontiguousarray(image), code).astype(np.float64)


def _with_gray(image: np.ndarray, gray: np.ndarray) -> np.ndarray:
    """Copy of image with RGB set to gray, alpha preserved."""
    result = image.copy()
    value = np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    result[:, :, 0] = value
    result[:, :, 1] = value
    result[:, :, 2] = value
    return result


def _interior(image: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Write values into the RGB interior, keeping the 1-pixel border."""
    result = image.copy()
    h, w = image.shape[:2]
    if h < 3 or w < 3:
        return result
    inner = np.clip(np.rint(values[1:-1, 1:-1]), 0, 255).astype(np.uint8)
    for channel in range(3):
        result[1:-1, 1:-1, channel] = inner
    return result


def enhance_contrast(image: np.ndarray, factor: Optional[float] = None) -> np.ndarray:
    """Grayscale, then linear stretch around mid-gray."""
    if factor is None:
        factor = config.CONTRAST_FACTOR
    gray = luminance(image)
    return _with_gray(image, (gray - 128) * factor + 128)


def enhance_rtl_contrast(image: np.ndarray) -> np.ndarray:
    """
    Stronger stretch with an asymmetric curve: shadows are darkened
    further, which keeps thin Arabic strokes from washing out.
    """
    gray = luminance(image)
    stretched = np.clip((gray - 128) * config.RTL_CONTRAST_FACTOR + 128, 0, 255)
    curved = np.where(gray < 128, stretched * config.RTL_SHADOW_FACTOR, stretched)
    return _with_gray(image, curved)


def denoise(image: np.ndarray) -> np.ndarray:
    """3x3 median of the first channel, border untouched."""
    channel = np.ascontiguousarray(image[:, :, 0])
    return _interior(image, cv2.medianBlur(channel, 3))


def straighten_lines(image: np.ndarray) -> np.ndarray:
    """
    Reinforce inter-word gaps: a near-white pixel whose right neighbour is
    also near-white is pushed further towards white. This is a spacing
    heuristic for cursive script, not a rotation.
    """
    gray = luminance(image)
    light = gray > config.SPACE_LIGHT_THRESHOLD

    gap = np.zeros_like(light)
    gap[:, :-1] = light[:, :-1] & light[:, 1:]

    result = image.copy()
    boosted = np.minimum(255, gray + config.SPACE_BOOST).astype(np.uint8)
    for channel in range(3):
        result[:, :, channel] = np.where(gap, boosted, image[:, :, channel])
    return result


def sharpen(image: np.ndarray) -> np.ndarray:
    """Convolve the first channel with a kernel sized for Arabic strokes."""
    edge = config.SHARPEN_EDGE
    kernel = np.array(
        [[0, edge, 0], [edge, config.SHARPEN_CENTER, edge], [0, edge, 0]],
        dtype=np.float32,
    )
    channel = image[:, :, 0].astype(np.float32)
    return _interior(image, cv2.filter2D(channel, -1, kernel))


def clean_scan_artifacts(image: np.ndarray) -> np.ndarray:
    """Whiten isolated dark pixels with fewer than MIN_DARK_NEIGHBORS dark 8-neighbours."""
    channel = image[:, :, 0]
    dark = (channel < config.DARK_THRESHOLD).astype(np.float32)
    ring = np.ones((3, 3), dtype=np.float32)
    ring[1, 1] = 0
    neighbours = cv2.filter2D(dark, -1, ring, borderType=cv2.BORDER_CONSTANT)

    isolated = (dark > 0) & (neighbours < config.MIN_DARK_NEIGHBORS)
    values = np.where(isolated, 255, channel)
    return _interior(image, values)


def improve_character_separation(image: np.ndarray) -> np.ndarray:
    """
    Lighten one-pixel-high horizontal bridges between letterforms:
    a dark pixel with a dark right neighbour and light pixels directly
    above and below.
    """
    channel = image[:, :, 0].astype(np.int32)
    h, w = channel.shape
    result = image.copy()
    if h < 3 or w < 4:
        return result

    centre = channel[1:-1, 1:-2]
    right = channel[1:-1, 2:-1]
    above = channel[:-2, 1:-2]
    below = channel[2:, 1:-2]

    bridge = (
        (centre < config.BRIDGE_DARK_THRESHOLD)
        & (right < config.BRIDGE_DARK_THRESHOLD)
        & (above > config.BRIDGE_LIGHT_THRESHOLD)
        & (below > config.BRIDGE_LIGHT_THRESHOLD)
    )
    lightened = np.where(bridge, np.minimum(255, centre + config.BRIDGE_LIGHTEN), centre)
    for ch in range(3):
        result[1:-1, 1:-2, ch] = lightened.astype(np.uint8)
    return result


def _run_filters(
    image: np.ndarray, steps: List[Tuple[str, Callable[[np.ndarray], np.ndarray]]]
) -> np.ndarray:
    """Apply filters in order; on any failure return the untouched input."""
    try:
        result = to_rgba(image)
        for name, step in steps:
            result = step(result)
            logger.debug("%s done", name)
        return result
    except Exception as e:
        logger.warning("Preprocessing failed, using original image: %s", e)
        return image


def preprocess(
    image: np.ndarray, options: Optional[PreprocessingOptions] = None
) -> np.ndarray:
    """
    Run the standard preprocessing pipeline on a single image.

    Order: contrast -> denoise -> straighten -> sharpen.

    Args:
        image: RGBA, RGB or grayscale uint8 array.
        options: Filter toggles. All on by default.

    Returns:
        RGBA array of the same height and width, or the original image if
        a filter failed.
    """
    if options is None:
        options = PreprocessingOptions()

    steps = []
    if options.enhance_contrast:
        steps.append(("Contrast enhancement", enhance_contrast))
    if options.denoise_image:
        steps.append(("Denoising", denoise))
    if options.straighten_lines:
        steps.append(("Space reinforcement", straighten_lines))
    if options.sharpen_text:
        steps.append(("Sharpening", sharpen))

    return _run_filters(image, steps)


def preprocess_for_rtl(image: np.ndarray) -> np.ndarray:
    """Aggressive variant for poor scans of Arabic text."""
    return _run_filters(
        image,
        [
            ("RTL contrast enhancement", enhance_rtl_contrast),
            ("Scan artifact cleanup", clean_scan_artifacts),
            ("Character separation", improve_character_separation),
            ("Space reinforcement", straighten_lines),
            ("Sharpening", sharpen),
        ],
    )


def analyze_quality(image: np.ndarray) -> ImageQuality:
    """
    Score contrast, sharpness and noise, each in [0, 1].

    contrast  - grayscale range over 255
    sharpness - mean gradient magnitude (right/down differences) / 100
    noise     - standard deviation of the first channel / 128
    """
    rgba = to_rgba(image)
    gray = luminance(rgba)
    contrast = float((gray.max() - gray.min()) / 255) if gray.size else 0.0

    channel = rgba[:, :, 0].astype(np.float64)
    h, w = channel.shape
    if h >= 3 and w >= 3:
        centre = channel[1:-1, 1:-1]
        grad_x = np.abs(centre - channel[1:-1, 2:])
        grad_y = np.abs(centre - channel[2:, 1:-1])
        sharpness = float(min(1.0, np.sqrt(grad_x ** 2 + grad_y ** 2).mean() / 100))
    else:
        sharpness = 0.0

    noise = float(min(1.0, channel.std() / 128)) if channel.size else 0.0

    if contrast > 0.7 and sharpness > 0.6 and noise < 0.3:
        suitability = "excellent"
    elif contrast > 0.5 and sharpness > 0.4 and noise < 0.5:
        suitability = "good"
    else:
        suitability = "poor"

    logger.info(
        "Image quality: contrast=%.0f%% sharpness=%.0f%% noise=%.0f%% (%s)",
        contrast * 100,
        sharpness * 100,
        noise * 100,
        suitability,
    )
    return ImageQuality(
        contrast=min(1.0, max(0.0, contrast)),
        sharpness=sharpness,
        noise=noise,
        suitability=suitability,
    )
