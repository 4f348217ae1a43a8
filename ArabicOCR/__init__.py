"""
Arabic OCR correction toolkit

Recognizes Arabic/French legal documents (Algerian official texts) and
repairs typical OCR damage: glued words, stray bidi markers, presentation
glyphs, reversed right-to-left lines and non-canonical legal phrases.
Every correction is reported with its kind, span and confidence.

Public API:
    process_document            - OCR + correct a single image or PDF
    process_batch               - Process multiple documents concurrently
    process_advanced_corrections - Correct text and return a full report
    process_arabic_text         - Correct text and return a short summary
    preprocess, preprocess_for_rtl, analyze_quality - Image filters
    detect_script_ratio, select_profile - Profile selection
    OCRContext                  - Engine lifecycle and stage timings
"""

from .ocr_pipeline import OCRContext, process_batch, process_document
from .postprocessor import process_advanced_corrections, process_arabic_text
from .preprocessor import analyze_quality, preprocess, preprocess_for_rtl
from .profiles import detect_script_ratio, select_profile
from .schemas import (
    CorrectionKind,
    CorrectionRecord,
    CorrectionReport,
    DocumentProfile,
    OCRDocumentResult,
    OCRPageResult,
    PreprocessingOptions,
)

__all__ = [
    "process_document",
    "process_batch",
    "process_advanced_corrections",
    "process_arabic_text",
    "preprocess",
    "preprocess_for_rtl",
    "analyze_quality",
    "detect_script_ratio",
    "select_profile",
    "OCRContext",
    "CorrectionKind",
    "CorrectionRecord",
    "CorrectionReport",
    "DocumentProfile",
    "OCRDocumentResult",
    "OCRPageResult",
    "PreprocessingOptions",
]
