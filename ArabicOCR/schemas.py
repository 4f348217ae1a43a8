"""
schemas.py

Pydantic models for OCR results, correction reports, preprocessing
options and document profiles.

Correction records are frozen: once a pass emits one it cannot be
altered, so a reviewer can accept or reject each change after the fact.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class CorrectionKind(str, Enum):
    """Category of an applied text correction."""

    WORD_SEPARATION = "word_separation"
    RTL_DIRECTION = "rtl_direction"
    MARKER_CLEANUP = "marker_cleanup"
    LIGATURE_FIX = "ligature_fix"
    LEGAL_TERM = "legal_term"


class CorrectionRecord(BaseModel):
    """One applied fix, traceable to the rule that produced it."""

    model_config = ConfigDict(frozen=True)

    kind: CorrectionKind = Field(..., description="Correction category")
    original: str = Field(..., description="Span before the correction")
    corrected: str = Field(..., description="Span after the correction")
    confidence: float = Field(
        ..., ge=0.0, le=1.0, description="Heuristic confidence of the rule"
    )
    position: int = Field(
        ...,
        ge=0,
        description="Character offset (line index for rtl_direction) in the text "
        "as it stood when the rule ran",
    )
    description: str = Field(..., description="Human-readable rule name")


class CorrectionStatistics(BaseModel):
    """Counts per correction kind for one pipeline run."""

    words_separated: int = 0
    markers_cleaned: int = 0
    ligatures_corrected: int = 0
    legal_terms_normalized: int = 0
    directions_corrected: int = 0
    total_corrections: int = 0
    processing_time_ms: float = 0.0

    @classmethod
    def from_records(
        cls, records: List[CorrectionRecord], processing_time_ms: float = 0.0
    ) -> "CorrectionStatistics":
        counts = {kind: 0 for kind in CorrectionKind}
        for record in records:
            counts[record.kind] += 1

        return cls(
            words_separated=counts[CorrectionKind.WORD_SEPARATION],
            markers_cleaned=counts[CorrectionKind.MARKER_CLEANUP],
            ligatures_corrected=counts[CorrectionKind.LIGATURE_FIX],
            legal_terms_normalized=counts[CorrectionKind.LEGAL_TERM],
            directions_corrected=counts[CorrectionKind.RTL_DIRECTION],
            total_corrections=len(records),
            processing_time_ms=processing_time_ms,
        )


class PassResult(BaseModel):
    """Output of a single correction pass."""

    text: str
    corrections: List[CorrectionRecord] = Field(default_factory=list)


class CorrectionReport(BaseModel):
    """Full result of one run of the advanced correction pipeline."""

    text: str = Field(default="", description="Corrected text")
    corrections: List[CorrectionRecord] = Field(
        default_factory=list, description="Applied corrections in pass order"
    )
    statistics: CorrectionStatistics = Field(default_factory=CorrectionStatistics)
    notes: List[str] = Field(
        default_factory=list, description="Diagnostics for passes that were skipped"
    )


class ArabicProcessingResult(BaseModel):
    """Summary returned by the non-reporting correction variant."""

    original_text: str
    processed_text: str
    corrections: List[str] = Field(default_factory=list)
    arabic_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    language: str = Field(default="fr", description="ar | fr | mixed")
    profile: str = Field(default="legal", description="Selected document profile")
    words_separated: int = 0
    ligatures_corrected: int = 0


class DocumentProfile(BaseModel):
    """Character whitelist and engine tuning for one class of document."""

    model_config = ConfigDict(frozen=True)

    name: str
    whitelist: str
    pageseg_mode: int = Field(..., ge=0, le=13)
    ocr_engine_mode: int = Field(..., ge=0, le=3)
    engine_parameters: Dict[str, str] = Field(default_factory=dict)
    description: str = ""

    def tesseract_config(self) -> str:
        """
        Render the profile as a Tesseract command-line config string.

        Whitespace and quote characters are left out of the whitelist since
        the config string is split shell-style.
        """
        whitelist = "".join(
            ch for ch in self.whitelist if not ch.isspace() and ch not in "\"'\\"
        )
        parts = [
            f"--psm {self.pageseg_mode}",
            f"--oem {self.ocr_engine_mode}",
            f"-c tessedit_char_whitelist={whitelist}",
        ]
        parts.extend(f"-c {key}={value}" for key, value in self.engine_parameters.items())
        return " ".join(parts)


class PreprocessingOptions(BaseModel):
    """Toggles for the image preprocessing filters."""

    enhance_contrast: bool = True
    denoise_image: bool = True
    straighten_lines: bool = True
    improve_dpi: bool = True
    sharpen_text: bool = True


class ImageQuality(BaseModel):
    """Quality metrics used to choose how hard to preprocess."""

    contrast: float = Field(..., ge=0.0, le=1.0)
    sharpness: float = Field(..., ge=0.0, le=1.0)
    noise: float = Field(..., ge=0.0, le=1.0)
    suitability: str = Field(..., description="excellent | good | poor")


class OCRWord(BaseModel):
    """Single recognized word with bounding box and confidence."""

    text: str = Field(..., description="Recognized text for this word")
    bbox: List[Tuple[float, float]] = Field(
        ..., description="Bounding box as list of (x, y) corner points"
    )
    confidence: float = Field(
        ..., ge=0.0, le=1.0, description="Recognition confidence (0.0 to 1.0)"
    )


class OCRLine(BaseModel):
    """A line of text composed of one or more words."""

    words: List[OCRWord] = Field(default_factory=list, description="Words in the line")
    text: str = Field(..., description="Full line text")
    confidence: float = Field(
        ..., ge=0.0, le=1.0, description="Aggregated line confidence"
    )


class OCRPageResult(BaseModel):
    """Full page OCR result with the engine text and its corrected form."""

    page_number: int = Field(..., ge=1, description="1-based page number")
    lines: List[OCRLine] = Field(default_factory=list, description="Recognized lines")
    raw_text: str = Field(default="", description="Engine text joined from lines")
    text: str = Field(default="", description="Text after correction passes")
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Overall page confidence"
    )
    script_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    profile: Optional[str] = Field(default=None, description="Profile used for OCR")
    report: Optional[CorrectionReport] = None
    warnings: List[str] = Field(
        default_factory=list, description="Warnings for low-confidence regions"
    )
    has_errors: bool = Field(
        default=False, description="Whether OCR engine encountered errors"
    )


class OCRDocumentResult(BaseModel):
    """Multi-page document OCR result."""

    file_path: str = Field(..., description="Source file path")
    doc_id: str = Field(..., description="Unique document identifier")
    pages: List[OCRPageResult] = Field(
        default_factory=list, description="Per-page results"
    )
    text: str = Field(default="", description="Corrected text from all pages")
    total_pages: int = Field(default=0, ge=0, description="Total number of pages")
    overall_confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Document-level confidence"
    )
    total_corrections: int = Field(default=0, ge=0)
    warnings: List[str] = Field(
        default_factory=list, description="Document-level warnings"
    )
