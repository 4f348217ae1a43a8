"""
ocr_pipeline.py

Main orchestrator for the Arabic OCR package.

Coordinates: loading -> quality analysis -> preprocessing -> OCR ->
profile selection -> correction passes. Engines and their models live in
an explicitly constructed OCRContext rather than module globals; a
context can be shared by concurrent documents.
"""

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Dict, List, Optional

from . import config
from .engine import create_engine
from .postprocessor import postprocess_page
from .preprocessor import analyze_quality, preprocess, preprocess_for_rtl
from .profiles import detect_script_ratio, get_profile, select_profile
from .schemas import OCRDocumentResult, OCRPageResult, PreprocessingOptions
from .utils import load_images, to_pil

logger = logging.getLogger(__name__)


class OCRContext:
    """
    Owns an OCR engine and records time spent per pipeline stage.

    Usage:
        with OCRContext(engine_name="tesseract") as ctx:
            result = process_document("page.png", context=ctx)
            print(ctx.timings)
    """

    def __init__(self, engine=None, engine_name: Optional[str] = None):
        self.engine = engine if engine is not None else create_engine(engine_name)
        self.timings: Dict[str, float] = {}
        self.started = False
        self._lock = threading.Lock()

    def start(self) -> "OCRContext":
        """Load the engine's models. Idempotent."""
        with self._lock:
            if self.started:
                return self
            self.started = True
        with self.timed("engine_load"):
            self.engine.load()
        logger.info("OCR context started (engine=%s)", self.engine.name)
        return self

    def stop(self) -> None:
        """Release engine resources."""
        with self._lock:
            if not self.started:
                return
            self.started = False
        self.engine.reset()
        logger.info("OCR context stopped")

    def __enter__(self) -> "OCRContext":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @contextmanager
    def timed(self, stage: str):
        """Accumulate wall-clock milliseconds under ``stage``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            with self._lock:
                self.timings[stage] = self.timings.get(stage, 0.0) + elapsed


def _prepare(image, options: PreprocessingOptions, context: OCRContext):
    with context.timed("quality"):
        quality = analyze_quality(image)

    with context.timed("preprocess"):
        if quality.suitability == "poor":
            logger.info("Poor scan quality, using RTL preprocessing")
            return preprocess_for_rtl(image)
        return preprocess(image, options)


def _recognize_page(image, page_index: int, context: OCRContext) -> OCRPageResult:
    """
    OCR one page, then pick the profile from the recognized text.

    Profile-aware engines run again when the detected profile differs
    from the default one used for the first pass.
    """
    engine = context.engine
    pil_image = to_pil(image)
    initial = get_profile(config.DEFAULT_PROFILE)

    with context.timed("ocr"):
        page = engine.process([pil_image], initial, page_offset=page_index)[0]

    profile = select_profile(detect_script_ratio(page.raw_text))
    if engine.supports_profiles and profile.name != initial.name and not page.has_errors:
        logger.info(
            "Page %d: re-running OCR with profile %s", page_index + 1, profile.name
        )
        with context.timed("ocr"):
            page = engine.process([pil_image], profile, page_offset=page_index)[0]

    page.profile = profile.name
    return page


def process_document(
    file_path: str,
    context: Optional[OCRContext] = None,
    options: Optional[PreprocessingOptions] = None,
    doc_id: Optional[str] = None,
) -> OCRDocumentResult:
    """
    Process a document through the full OCR and correction pipeline.

    Args:
        file_path: Path to an image or PDF file.
        context: Started OCRContext to use. A temporary one is created
            and stopped afterwards if omitted.
        options: Preprocessing toggles. ``improve_dpi`` selects the PDF
            rasterization resolution.
        doc_id: Optional document identifier. Auto-generated if not provided.

    Returns:
        OCRDocumentResult with per-page reports and the corrected text.
    """
    if doc_id is None:
        doc_id = str(uuid.uuid4())[:8]
    if options is None:
        options = PreprocessingOptions()

    owns_context = context is None
    if owns_context:
        context = OCRContext()
    context.start()

    logger.info("Processing document: %s (doc_id=%s)", file_path, doc_id)

    try:
        dpi = config.TARGET_DPI if options.improve_dpi else config.BASE_DPI
        with context.timed("load"):
            images = load_images(file_path, dpi=dpi)
        logger.info("Loaded %d page(s)", len(images))

        page_results: List[OCRPageResult] = []
        for i, image in enumerate(images):
            logger.info("Processing page %d/%d", i + 1, len(images))
            prepared = _prepare(image, options, context)
            page = _recognize_page(prepared, i, context)
            with context.timed("correct"):
                page = postprocess_page(page)
            page_results.append(page)

            # Release image memory
            del prepared
    finally:
        if owns_context:
            context.stop()

    result = OCRDocumentResult(
        file_path=str(file_path),
        doc_id=doc_id,
        pages=page_results,
        text="\n\n".join(page.text for page in page_results if page.text),
        total_pages=len(page_results),
        overall_confidence=_compute_document_confidence(page_results),
        total_corrections=sum(
            len(page.report.corrections) for page in page_results if page.report
        ),
        warnings=[w for page in page_results for w in page.warnings],
    )

    logger.info(
        "Document processed: %d pages, confidence=%.2f, corrections=%d, warnings=%d",
        result.total_pages,
        result.overall_confidence,
        result.total_corrections,
        len(result.warnings),
    )
    return result


def _process_or_error(
    file_path: str, context: OCRContext, options: Optional[PreprocessingOptions]
) -> OCRDocumentResult:
    try:
        return process_document(file_path, context=context, options=options)
    except Exception as e:
        logger.error("Failed to process %s: %s", file_path, e)
        return OCRDocumentResult(
            file_path=str(file_path),
            doc_id=str(uuid.uuid4())[:8],
            warnings=[f"Processing failed: {e}"],
        )


def process_batch(
    file_paths: List[str],
    context: Optional[OCRContext] = None,
    options: Optional[PreprocessingOptions] = None,
    max_workers: Optional[int] = None,
) -> List[OCRDocumentResult]:
    """
    Process multiple documents, concurrently when more than one worker is allowed.

    All documents share one context. A document that fails yields a
    result with no pages and the error in its warnings. Results follow
    the order of ``file_paths``.
    """
    if max_workers is None:
        max_workers = config.BATCH_WORKERS

    owns_context = context is None
    if owns_context:
        context = OCRContext()
    context.start()

    try:
        if len(file_paths) <= 1 or max_workers <= 1:
            return [_process_or_error(fp, context, options) for fp in file_paths]

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(_process_or_error, fp, context, options)
                for fp in file_paths
            ]
            return [future.result() for future in futures]
    finally:
        if owns_context:
            context.stop()


def _compute_document_confidence(pages: List[OCRPageResult]) -> float:
    """
    Compute document-level confidence as a weighted average of page confidences.
    Weight is proportional to the text length on each page.
    """
    if not pages:
        return 0.0

    total_chars = sum(len(p.raw_text) for p in pages)
    if total_chars == 0:
        return 0.0

    weighted_sum = sum(p.confidence * len(p.raw_text) for p in pages)
    return weighted_sum / total_chars
