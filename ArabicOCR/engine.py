"""
engine.py

OCR engine adapters with confidence scoring.

Two backends share one calling convention, ``process(images, profile)``,
returning one OCRPageResult per image:

- SuryaOCREngine: Surya detection + recognition (default). Profiles are
  not used; Surya has no character whitelist.
- TesseractOCREngine: Tesseract through pytesseract. Consumes the
  document profile's page segmentation mode, engine mode and whitelist.

Heavy libraries are imported lazily. Each engine serializes inference
with its own lock, so one instance may be shared across worker threads.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

from PIL import Image

from . import config
from .schemas import DocumentProfile, OCRLine, OCRPageResult, OCRWord

logger = logging.getLogger(__name__)


def _error_page(page_number: int, error: Exception, engine: str) -> OCRPageResult:
    logger.error("%s engine error on page %d: %s", engine, page_number, error)
    return OCRPageResult(
        page_number=page_number,
        warnings=[f"OCR engine error: {error}"],
        has_errors=True,
    )


def _low_confidence_warning(line: OCRLine) -> Optional[str]:
    if line.confidence < config.MEDIUM_CONFIDENCE_THRESHOLD:
        return f"Low confidence ({line.confidence:.2f}) for: '{line.text[:50]}'"
    return None


def _page_from_lines(page_number: int, lines: List[OCRLine]) -> OCRPageResult:
    warnings = [w for w in map(_low_confidence_warning, lines) if w]
    raw_text = "\n".join(line.text for line in lines)
    return OCRPageResult(
        page_number=page_number,
        lines=lines,
        raw_text=raw_text,
        text=raw_text,
        confidence=_compute_page_confidence(lines),
        warnings=warnings,
    )


class SuryaOCREngine:
    """
    Wrapper around Surya's detection and recognition models.

    Models are loaded on first use and kept until reset().
    GPU is used when available, otherwise CPU.
    """

    name = "surya"
    supports_profiles = False

    def __init__(self, languages: Optional[List[str]] = None):
        self.languages = languages or list(config.OCR_LANGUAGES)
        self._det_model = None
        self._rec_model = None
        self._det_processor = None
        self._rec_processor = None
        self._models_loaded = False
        self._lock = threading.Lock()

    def load(self) -> None:
        """Load Surya models. Safe to call more than once."""
        with self._lock:
            self._load_models()

    def _load_models(self) -> None:
        if self._models_loaded:
            return

        try:
            from surya.model.detection.model import load_model as load_det_model
            from surya.model.detection.processor import (
                load_processor as load_det_processor,
            )
            from surya.model.recognition.model import load_model as load_rec_model
            from surya.model.recognition.processor import (
                load_processor as load_rec_processor,
            )
        except ImportError:
            raise ImportError(
                "surya-ocr is required. Install it with: pip install surya-ocr"
            )

        use_gpu = config.USE_GPU
        try:
            import torch

            if use_gpu and not torch.cuda.is_available():
                logger.info("CUDA not available, falling back to CPU")
                use_gpu = False
        except ImportError:
            logger.info("PyTorch not found, using CPU mode")
            use_gpu = False

        logger.info("Loading Surya models (gpu=%s, langs=%s)...", use_gpu, self.languages)

        self._det_processor = load_det_processor()
        self._det_model = load_det_model()
        self._rec_processor = load_rec_processor()
        self._rec_model = load_rec_model()

        if not use_gpu:
            self._det_model = self._det_model.cpu()
            self._rec_model = self._rec_model.cpu()

        self._models_loaded = True
        logger.info("Surya models loaded")

    def process(
        self,
        images: List[Image.Image],
        profile: Optional[DocumentProfile] = None,
        page_offset: int = 0,
    ) -> List[OCRPageResult]:
        """
        Run detection + recognition on a list of RGB images.

        ``profile`` is accepted for interface parity and ignored.
        """
        with self._lock:
            self._load_models()

            try:
                from surya.detection import batch_text_detection
                from surya.recognition import batch_recognition
            except ImportError:
                raise ImportError(
                    "surya-ocr is required. Install it with: pip install surya-ocr"
                )

            results = []
            batch_size = config.SURYA_BATCH_SIZE
            for batch_start in range(0, len(images), batch_size):
                batch = images[batch_start : batch_start + batch_size]
                for i, image in enumerate(batch):
                    page_num = page_offset + batch_start + i + 1
                    try:
                        page = self._recognize(
                            image, batch_text_detection, batch_recognition, page_num
                        )
                    except Exception as e:
                        page = _error_page(page_num, e, self.name)
                    results.append(page)
            return results

    def _recognize(
        self, image: Image.Image, batch_text_detection, batch_recognition, page_number: int
    ) -> OCRPageResult:
        det_results = batch_text_detection([image], self._det_model, self._det_processor)
        if not det_results or not det_results[0].bboxes:
            return OCRPageResult(page_number=page_number, warnings=["No text detected on page"])

        rec_results = batch_recognition(
            [image], [self.languages], self._rec_model, self._rec_processor, det_results
        )
        if not rec_results or not rec_results[0].text_lines:
            return OCRPageResult(
                page_number=page_number, warnings=["Recognition produced no text"]
            )

        lines = []
        for text_line in rec_results[0].text_lines:
            text = text_line.text.strip()
            if not text:
                continue

            confidence = float(getattr(text_line, "confidence", 0.0) or 0.0)
            corners = _bbox_corners(getattr(text_line, "bbox", None))
            # Surya returns line-level text; keep one word per line
            word = OCRWord(text=text, bbox=corners, confidence=confidence)
            lines.append(OCRLine(words=[word], text=text, confidence=confidence))

        return _page_from_lines(page_number, lines)

    def reset(self) -> None:
        """Release models and free memory."""
        with self._lock:
            self._det_model = None
            self._rec_model = None
            self._det_processor = None
            self._rec_processor = None
            self._models_loaded = False
        logger.info("Surya models released")


class TesseractOCREngine:
    """Tesseract via pytesseract, driven by the document profile."""

    name = "tesseract"
    supports_profiles = True

    def __init__(self, languages: Optional[str] = None):
        self.languages = languages or config.TESSERACT_LANGUAGES
        self._lock = threading.Lock()
        self._pytesseract = None

    def load(self) -> None:
        with self._lock:
            self._load_module()

    def _load_module(self):
        if self._pytesseract is None:
            try:
                import pytesseract
            except ImportError:
                raise ImportError(
                    "pytesseract is required. Install it with: pip install pytesseract"
                )
            self._pytesseract = pytesseract
            logger.info("Tesseract backend ready (langs=%s)", self.languages)
        return self._pytesseract

    def process(
        self,
        images: List[Image.Image],
        profile: Optional[DocumentProfile] = None,
        page_offset: int = 0,
    ) -> List[OCRPageResult]:
        """Recognize each image with the profile's Tesseract configuration."""
        with self._lock:
            pytesseract = self._load_module()
            tess_config = profile.tesseract_config() if profile else ""
            if profile:
                logger.debug("Tesseract profile %s: %s", profile.name, tess_config)

            results = []
            for i, image in enumerate(images):
                page_num = page_offset + i + 1
                try:
                    data = pytesseract.image_to_data(
                        image,
                        lang=self.languages,
                        config=tess_config,
                        output_type=pytesseract.Output.DICT,
                    )
                    page = _page_from_lines(page_num, _group_tesseract_words(data))
                    if not page.lines:
                        page.warnings.append("No text detected on page")
                except Exception as e:
                    page = _error_page(page_num, e, self.name)
                if profile:
                    page.profile = profile.name
                results.append(page)
            return results

    def reset(self) -> None:
        with self._lock:
            self._pytesseract = None


def _bbox_corners(bbox) -> List[Tuple[float, float]]:
    """Convert [x1, y1, x2, y2] to four corner points."""
    if bbox is not None and len(bbox) == 4:
        x1, y1, x2, y2 = (float(v) for v in bbox)
        return [(x1, y1), (x2, y1), (x2, y2), (x1, y2)]
    return [(0.0, 0.0)] * 4


def _group_tesseract_words(data: Dict[str, list]) -> List[OCRLine]:
    """
    Build lines from pytesseract.image_to_data output.

    Entries with confidence -1 are layout rows, not words. Tesseract
    reports word confidence on a 0-100 scale.
    """
    grouped: Dict[Tuple[int, int, int], List[OCRWord]] = {}
    for i, text in enumerate(data.get("text", [])):
        text = (text or "").strip()
        conf = float(data["conf"][i])
        if not text or conf < 0:
            continue

        left, top = float(data["left"][i]), float(data["top"][i])
        right = left + float(data["width"][i])
        bottom = top + float(data["height"][i])
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        grouped.setdefault(key, []).append(
            OCRWord(
                text=text,
                bbox=_bbox_corners([left, top, right, bottom]),
                confidence=min(1.0, conf / 100.0),
            )
        )

    lines = []
    for key in sorted(grouped):
        words = grouped[key]
        lines.append(
            OCRLine(
                words=words,
                text=" ".join(w.text for w in words),
                confidence=_compute_weighted_confidence(words),
            )
        )
    return lines


def _compute_weighted_confidence(words: List[OCRWord]) -> float:
    """Character-weighted mean of word confidences."""
    total_chars = sum(len(w.text) for w in words)
    if total_chars == 0:
        return 0.0
    return sum(w.confidence * len(w.text) for w in words) / total_chars


def _compute_page_confidence(lines: List[OCRLine]) -> float:
    """
    Compute page-level confidence as a weighted average of line confidences.
    Weight is proportional to the number of characters in each line.
    """
    if not lines:
        return 0.0

    total_chars = sum(len(line.text) for line in lines)
    if total_chars == 0:
        return 0.0

    weighted_sum = sum(line.confidence * len(line.text) for line in lines)
    return weighted_sum / total_chars


ENGINES = {
    SuryaOCREngine.name: SuryaOCREngine,
    TesseractOCREngine.name: TesseractOCREngine,
}


def create_engine(name: Optional[str] = None):
    """Instantiate an engine by name (config.OCR_ENGINE by default)."""
    name = name or config.OCR_ENGINE
    try:
        return ENGINES[name]()
    except KeyError:
        raise ValueError(f"Unknown OCR engine '{name}'. Known: {sorted(ENGINES)}") from None
