"""
config.py

Configuration module for the Arabic OCR correction pipeline.

Purpose:
--------
Contains all constants and settings used across the module, including
engine parameters, preprocessing filter weights, script-ratio thresholds,
per-rule confidences, and security limits.

Design Principle:
-----------------
Configuration is isolated from business logic.
Changing thresholds or filter weights should not require editing
core correction code. Character sets and document profiles are kept
in a separate data table (see PROFILES_PATH).
"""

import os

# -----------------------------
# Engine
# -----------------------------
OCR_ENGINE = "surya"  # surya | tesseract
OCR_LANGUAGES = ["ar", "fr"]
TESSERACT_LANGUAGES = "ara+fra"
USE_GPU = True  # Auto-detect CUDA, fallback to CPU
DEFAULT_PROFILE = "bilingual"

# -----------------------------
# Preprocessing
# -----------------------------
TARGET_DPI = 300  # PDF rasterization when improve_dpi is on
BASE_DPI = 150
CONTRAST_FACTOR = 1.3
RTL_CONTRAST_FACTOR = 1.5
RTL_SHADOW_FACTOR = 0.8
SPACE_LIGHT_THRESHOLD = 200
SPACE_BOOST = 20
SHARPEN_CENTER = 4.2
SHARPEN_EDGE = -0.8
DARK_THRESHOLD = 128
MIN_DARK_NEIGHBORS = 3
BRIDGE_DARK_THRESHOLD = 180
BRIDGE_LIGHT_THRESHOLD = 200
BRIDGE_LIGHTEN = 40

# -----------------------------
# Script ratio
# -----------------------------
MIN_ARABIC_RATIO = 0.1  # Below this, Arabic passes are skipped
ARABIC_LANGUAGE_RATIO = 0.7
MIXED_LANGUAGE_RATIO = 0.2
RTL_LINE_ARABIC_RATIO = 0.7

# -----------------------------
# Correction confidences
# -----------------------------
MARKER_CONFIDENCE = 1.0
NAMED_SEPARATION_CONFIDENCE = 0.9
DIGIT_SEPARATION_CONFIDENCE = 0.75
COMPOUND_SEPARATION_CONFIDENCE = 0.6
LONG_TOKEN_CONFIDENCE = 0.5
LIGATURE_CONFIDENCE = 0.85
RTL_REVERSAL_CONFIDENCE = 0.7
RTL_NUMBER_CONFIDENCE = 0.75
RTL_OPENER_CONFIDENCE = 0.8
LEGAL_TERM_CONFIDENCE = 0.95
POLISH_CONFIDENCE = 1.0

# -----------------------------
# Word separation
# -----------------------------
LONG_TOKEN_LENGTH = 15
MIN_COMPOUND_PART = 4

# -----------------------------
# Confidence Thresholds
# -----------------------------
MEDIUM_CONFIDENCE_THRESHOLD = 0.60

# -----------------------------
# Security
# -----------------------------
MAX_FILE_SIZE_MB = 50
ALLOWED_EXTENSIONS = [".png", ".jpg", ".jpeg", ".tiff", ".bmp", ".pdf"]
TEXT_EXTENSIONS = [".txt"]

# -----------------------------
# Performance
# -----------------------------
SURYA_BATCH_SIZE = 4
BATCH_WORKERS = 4

# -----------------------------
# Paths
# -----------------------------
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PROFILES_PATH = os.path.join(BASE_DIR, "data", "character_profiles.json")
DICTIONARY_PATH = os.path.join(BASE_DIR, "dictionaries", "legal_arabic.txt")
