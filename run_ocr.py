"""
Correct a document and print the resulting text.

Usage:
    python run_ocr.py path/to/scan.png
    python run_ocr.py path/to/decree.txt
"""

import os
import sys

from ArabicOCR.ocr_pipeline import process_document
from ArabicOCR.postprocessor import process_advanced_corrections
from ArabicOCR.utils import load_text


def main():
    if len(sys.argv) < 2:
        print("Usage: python run_ocr.py <image_pdf_or_txt>")
        print("Example: python run_ocr.py decree.png")
        sys.exit(1)

    path = sys.argv[1]

    if not os.path.exists(path):
        print(f"Error: File not found: {path}")
        sys.exit(1)

    print(f"Processing: {path}")

    if path.lower().endswith(".txt"):
        report = process_advanced_corrections(load_text(path))
        text = report.text
        print(f"\nCorrections: {report.statistics.total_corrections}")
    else:
        print("Loading OCR engine (first run downloads the model)...")
        result = process_document(path)
        text = result.text
        print(f"\nPages: {result.total_pages}")
        print(f"Confidence: {result.overall_confidence:.0%}")
        print(f"Corrections: {result.total_corrections}")

    print("=" * 50)
    print(text)
    print("=" * 50)


if __name__ == "__main__":
    main()
