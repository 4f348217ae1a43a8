"""
run_ocr.py

CLI for OCR and correction of Arabic/French legal documents.

Usage:
    python -m ArabicOCR.run_ocr <image_or_pdf>
    python -m ArabicOCR.run_ocr <image_or_pdf> --json
    python -m ArabicOCR.run_ocr <text_file> --text
    python -m ArabicOCR.run_ocr <image_or_pdf> --engine tesseract --verbose
"""

import argparse
import logging
import sys

from .engine import ENGINES
from .ocr_pipeline import OCRContext, process_document
from .postprocessor import process_advanced_corrections
from .schemas import PreprocessingOptions
from .utils import OCRFileError, OCRSecurityError, load_text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract and correct Arabic/French text from legal documents"
    )
    parser.add_argument("path", help="Image, PDF, or (with --text) UTF-8 text file")
    parser.add_argument(
        "--text",
        action="store_true",
        help="Correct an existing text file instead of running OCR",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output the full structured result as JSON",
    )
    parser.add_argument(
        "--engine",
        choices=sorted(ENGINES),
        default=None,
        help="OCR engine (defaults to config.OCR_ENGINE)",
    )
    parser.add_argument(
        "--doc-id",
        default=None,
        help="Custom document ID (auto-generated if not provided)",
    )
    parser.add_argument(
        "--low-dpi",
        action="store_true",
        help="Rasterize PDFs at the base resolution instead of the target one",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _correct_text_file(args) -> None:
    report = process_advanced_corrections(load_text(args.path))
    if args.json:
        print(report.model_dump_json(indent=2))
        return

    stats = report.statistics
    print(f"Corrections: {stats.total_corrections} ({stats.processing_time_ms:.1f} ms)")
    for note in report.notes:
        print(f"Note: {note}")
    print("---")
    print(report.text)


def _ocr_document(args) -> None:
    options = PreprocessingOptions(improve_dpi=not args.low_dpi)
    with OCRContext(engine_name=args.engine) as context:
        result = process_document(
            args.path, context=context, options=options, doc_id=args.doc_id
        )

    if args.json:
        print(result.model_dump_json(indent=2))
        return

    print(f"File: {result.file_path}")
    print(f"Pages: {result.total_pages}")
    print(f"Confidence: {result.overall_confidence:.2%}")
    print(f"Corrections: {result.total_corrections}")
    if result.warnings:
        print(f"Warnings: {len(result.warnings)}")
    print("---")
    print(result.text)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.text:
            _correct_text_file(args)
        else:
            _ocr_document(args)
    except (OCRFileError, OCRSecurityError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
