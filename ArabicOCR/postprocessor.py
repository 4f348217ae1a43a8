"""
postprocessor.py

Multi-pass correction pipeline for Arabic/French legal OCR text.

Passes, in the order they must run:
1. Bidi-marker cleanup (directional controls, zero-width characters)
2. Word separation (words and numbers glued together by the engine)
3. Ligature and glyph repair (presentation forms, tatweel, exotic spaces)
4. RTL direction repair (lines captured in visual instead of logical order)
5. Legal-term normalization (canonical spelling of official phrases)
6. Final polishing (whitespace and script-boundary spacing)

Word separation has to precede RTL repair, which works on whitespace
delimited tokens. Every textual change is reported as a CorrectionRecord.
"""

import logging
import math
import os
import re
import time
import unicodedata
from typing import Callable, Dict, List, Optional, Set, Tuple

from . import config
from .profiles import detect_letter_ratio, detect_script_ratio, select_profile
from .rules import ARABIC_LETTER, LATIN_LETTER, CorrectionRule, apply_rules, rule
from .schemas import (
    ArabicProcessingResult,
    CorrectionKind,
    CorrectionRecord,
    CorrectionReport,
    CorrectionStatistics,
    OCRPageResult,
    PassResult,
)

logger = logging.getLogger(__name__)

L = ARABIC_LETTER
H = r"[^\S\n]*"  # horizontal whitespace only, terms never span lines

# Legal dictionary cache
_legal_dictionary: Optional[Set[str]] = None


def load_legal_dictionary() -> Set[str]:
    """
    Load the legal Arabic vocabulary from disk.
    Caches the result after first load.
    """
    global _legal_dictionary
    if _legal_dictionary is not None:
        return _legal_dictionary

    dict_path = config.DICTIONARY_PATH
    if not os.path.isfile(dict_path):
        logger.warning("Legal dictionary not found at %s", dict_path)
        _legal_dictionary = set()
        return _legal_dictionary

    with open(dict_path, "r", encoding="utf-8") as f:
        words = set()
        for line in f:
            word = line.strip()
            if word and not word.startswith("#"):
                words.add(word)

    _legal_dictionary = words
    logger.info("Loaded %d terms from legal dictionary", len(words))
    return _legal_dictionary


def reset_dictionary():
    """Reset the cached dictionary (useful for testing)."""
    global _legal_dictionary
    _legal_dictionary = None


# -----------------------------
# 1. Bidi markers
# -----------------------------
_MARKERS = [
    ("\u200E", "Left-to-Right Mark (LRM)"),
    ("\u200F", "Right-to-Left Mark (RLM)"),
    ("\u202A", "Left-to-Right Embedding (LRE)"),
    ("\u202B", "Right-to-Left Embedding (RLE)"),
    ("\u202C", "Pop Directional Formatting (PDF)"),
    ("\u202D", "Left-to-Right Override (LRO)"),
    ("\u202E", "Right-to-Left Override (RLO)"),
    ("\u2066", "Left-to-Right Isolate (LRI)"),
    ("\u2067", "Right-to-Left Isolate (RLI)"),
    ("\u2068", "First Strong Isolate (FSI)"),
    ("\u2069", "Pop Directional Isolate (PDI)"),
    ("\u061C", "Arabic Letter Mark (ALM)"),
    ("\uFEFF", "Byte Order Mark (BOM)"),
    ("\u200B", "Zero Width Space"),
    ("\u200C", "Zero Width Non-Joiner"),
    ("\u200D", "Zero Width Joiner"),
    ("\u00AD", "Soft Hyphen"),
    ("\u2028", "Line Separator"),
    ("\u2029", "Paragraph Separator"),
    ("\u180E", "Mongolian Vowel Separator"),
]

MARKER_RULES = [
    rule(
        re.escape(marker),
        "",
        CorrectionKind.MARKER_CLEANUP,
        config.MARKER_CONFIDENCE,
        f"Removed stray marker: {name}",
    )
    for marker, name in _MARKERS
]


def clean_markers(text: str) -> PassResult:
    """Delete directional controls and invisible OCR artifacts."""
    text, corrections = apply_rules(text, MARKER_RULES)
    return PassResult(text=text, corrections=corrections)


# -----------------------------
# 2. Word separation
# -----------------------------
def _split_long_token(match: re.Match) -> str:
    token = match.group(0)
    mid = math.ceil(len(token) / 2)
    return token[:mid] + " " + token[mid:]


def _split_compound(match: re.Match) -> str:
    """Split a glued token where both halves are known legal words."""
    token = match.group(0)
    lexicon = load_legal_dictionary()
    if token in lexicon:
        return token

    min_part = config.MIN_COMPOUND_PART
    for i in range(min_part, len(token) - min_part + 1):
        if token[:i] in lexicon and token[i:] in lexicon:
            return token[:i] + " " + token[i:]
    return token


def _named(pattern: str, replacement: str, description: str) -> CorrectionRule:
    return rule(
        pattern,
        replacement,
        CorrectionKind.WORD_SEPARATION,
        config.NAMED_SEPARATION_CONFIDENCE,
        description,
    )


def _generic(pattern: str, replacement, confidence: float, description: str) -> CorrectionRule:
    return rule(pattern, replacement, CorrectionKind.WORD_SEPARATION, confidence, description)


_ADJECTIVES = "رئاسي|تنفيذي|وزاري|برلماني|بلدي|قضائي|إداري|قانوني|تشريعي"
_MINISTRIES = (
    "العدل|الداخلية|المالية|الدفاع|الخارجية|التعليم|الصحة|العمل|التجارة"
    "|الثقافة|البيئة|النقل|الفلاحة|السكن|الطاقة|الصناعة"
)

WORD_SEPARATION_RULES = [
    # Decree headers: adjective glued to the following instrument or number
    _named(rf"({_ADJECTIVES})(رقم|قرار|مرسوم)", r"\1 \2", "Separated decree qualifier"),
    _named(r"(مرسوم|قرار|قانون|أمر)(رقم)", r"\1 \2", "Separated instrument and number"),
    # State name
    _named(r"الجمهورية(الجزائرية)", r"الجمهورية \1", "Separated Algerian Republic"),
    _named(r"الجزائرية(الديمقراطية|الشعبية)", r"الجزائرية \1", "Separated official state name"),
    _named(r"الديمقراطية(و?الشعبية)", r"الديمقراطية \1", "Separated official state name"),
    # Dates
    _named(r"(المؤرخة?)(في)", r"\1 \2", "Separated date formula"),
    _named(r"الموافق(ل\u0640?)(?=\s|\d|$)", r"الموافق \1", "Separated calendar correspondence"),
    # Structural references
    _named(
        r"(رقم|المادة|الفصل|الباب|الفقرة|البند|العدد)(\d+)",
        r"\1 \2",
        "Separated reference number",
    ),
    _named(r"(و?المتضمن)(القانون|النظام|اللائحة)", r"\1 \2", "Separated legal formula"),
    _named(r"المتعلق(ب\u0640?)", r"المتعلق \1", "Separated legal relation"),
    # Officials and institutions
    _named(rf"(?<!{L})وزير({_MINISTRIES})", r"وزير \1", "Separated minister title"),
    _named(rf"(?<!{L})رئيس(المجلس|البلدية|الدائرة|الجمهورية|الحكومة)", r"رئيس \1", "Separated head title"),
    _named(rf"(?<!{L})مدير(عام|ولائي|محلي)", r"مدير \1", "Separated director title"),
    _named(r"(المدير|الأمين|الكاتب|النائب)(العام)", r"\1 \2", "Separated general title"),
    _named(r"(المحافظ)(السامي)", r"\1 \2", "Separated high commissioner"),
    _named(r"(الوزير)(الأول)", r"\1 \2", "Separated prime minister"),
    _named(r"(الجريدة)(الرسمية)", r"\1 \2", "Separated official gazette"),
    _named(r"(الإدارة|المديرية|الأمانة)(العامة)", r"\1 \2", "Separated general body"),
    # Fixed expressions
    _named(rf"(?<!{L})بناء(على)", r"بناء \1", "Separated fixed expression"),
    _named(rf"(?<!{L})في(تطبيق)", r"في \1", "Separated fixed expression"),
    _named(rf"(?<!{L})استنادا(إلى)", r"استنادا \1", "Separated fixed expression"),
    _named(rf"(?<!{L})طبقا(ل)", r"طبقا \1", "Separated fixed expression"),
    _named(rf"(?<!{L})بمقتضى(ال)", r"بمقتضى \1", "Separated fixed expression"),
    # Letters and digits
    _generic(
        rf"({L}{{2,}})(\d+)({L}{{2,}})",
        r"\1 \2 \3",
        config.DIGIT_SEPARATION_CONFIDENCE,
        "Separated text-number-text",
    ),
    _generic(
        rf"({L}{{2,}})(\d+)",
        r"\1 \2",
        config.DIGIT_SEPARATION_CONFIDENCE,
        "Separated text-number",
    ),
    _generic(
        rf"(\d+)({L}{{2,}})",
        r"\1 \2",
        config.DIGIT_SEPARATION_CONFIDENCE,
        "Separated number-text",
    ),
    # Two known words glued together
    _generic(
        rf"{L}{{{2 * config.MIN_COMPOUND_PART},}}",
        _split_compound,
        config.COMPOUND_SEPARATION_CONFIDENCE,
        "Separated glued vocabulary words",
    ),
    # Last resort: abnormally long token
    _generic(
        rf"{L}{{{config.LONG_TOKEN_LENGTH},}}",
        _split_long_token,
        config.LONG_TOKEN_CONFIDENCE,
        "Split abnormally long token",
    ),
]


def separate_words(text: str) -> PassResult:
    """Insert missing spaces between glued Arabic words and numbers."""
    text, corrections = apply_rules(text, WORD_SEPARATION_RULES)
    return PassResult(text=text, corrections=corrections)


# -----------------------------
# 3. Ligatures and glyphs
# -----------------------------
_POSITIONAL_TAGS = ("<isolated>", "<initial>", "<medial>", "<final>")

HONORIFICS = {
    "\uFDFA": "(ص)",
    "\uFDFB": "(جل جلاله)",
}


def _build_presentation_forms() -> Dict[str, str]:
    """Map every positional presentation form to its canonical letters."""
    table = {}
    for block_start, block_end in ((0xFB50, 0xFDFF), (0xFE70, 0xFEFC)):
        for code_point in range(block_start, block_end + 1):
            ch = chr(code_point)
            if unicodedata.decomposition(ch).startswith(_POSITIONAL_TAGS):
                # isolated harakat decompose to space + mark
                table[ch] = unicodedata.normalize("NFKC", ch).lstrip(" ")
    table.update(HONORIFICS)
    return table


PRESENTATION_FORMS = _build_presentation_forms()
_LAM_ALIF = "\uFEF5-\uFEFC"


def _canonical_glyph(match: re.Match) -> str:
    return PRESENTATION_FORMS.get(match.group(0), match.group(0))


def _remove_tatweel(match: re.Match) -> str:
    """Drop tatweel, except the abbreviation mark after a lone proclitic (لـ, بـ)."""
    start = match.start()
    text = match.string
    if start >= 1 and text[start - 1] in "لب" and (start == 1 or text[start - 2].isspace()):
        return match.group(0)
    return ""


def _ligature(pattern: str, replacement, description: str) -> CorrectionRule:
    return rule(
        pattern,
        replacement,
        CorrectionKind.LIGATURE_FIX,
        config.LIGATURE_CONFIDENCE,
        description,
    )


LIGATURE_RULES = [
    _ligature("[\uFDFA\uFDFB]", _canonical_glyph, "Expanded honorific ligature"),
    _ligature(f"[{_LAM_ALIF}]", _canonical_glyph, "Normalized lam-alif ligature"),
    _ligature("[\uFB50-\uFDFF\uFE70-\uFEF4]", _canonical_glyph, "Normalized presentation form"),
    _ligature("\u0640+", _remove_tatweel, "Removed tatweel"),
    _ligature("[\u00A0\u2000-\u200A\u202F\u205F\u3000]", " ", "Normalized exotic space"),
    _ligature(rf"({L}[\u064B-\u064D])(?={L})", r"\1 ", "Split after tanween"),
    _ligature(rf"([ةى])(?={L})", r"\1 ", "Split after word-final letter"),
]


def correct_ligatures(text: str) -> PassResult:
    """Canonicalize glyph variants and repair liaison boundaries."""
    text, corrections = apply_rules(text, LIGATURE_RULES)
    return PassResult(text=text, corrections=corrections)


# -----------------------------
# 4. RTL direction
# -----------------------------
# Prepositions and conjunctions that cannot close a clause
SENTENCE_INITIAL_WORDS = {
    "في", "إن", "أن", "من", "إلى", "على", "عن", "مع",
    "حول", "ضد", "لدى", "منذ", "ثم", "لكن", "حيث",
}
DOCUMENT_OPENERS = {"المؤرخ", "الموافق", "المتضمن", "المعدل", "المتمم"}
TERMINAL_PUNCTUATION = ".،؛!؟"

_ARABIC_CHAR_RE = re.compile("[\u0600-\u06FF]")
_NUMERAL_RE = re.compile(r"^\d+(?:[/-]\d+)*$")


def _is_arabic_line(line: str) -> bool:
    total = len(re.sub(r"\s", "", line))
    if total == 0:
        return False
    return len(_ARABIC_CHAR_RE.findall(line)) / total > config.RTL_LINE_ARABIC_RATIO


def _direction_record(
    original: str, corrected: str, confidence: float, line_index: int, description: str
) -> CorrectionRecord:
    return CorrectionRecord(
        kind=CorrectionKind.RTL_DIRECTION,
        original=original,
        corrected=corrected,
        confidence=confidence,
        position=line_index,
        description=description,
    )


def _reorder_tokens(tokens: List[str]) -> Tuple[List[str], Optional[Tuple[float, str]]]:
    """Apply the first matching reordering heuristic to a line's tokens."""
    first, last = tokens[0], tokens[-1]

    if len(tokens) >= 3 and last in DOCUMENT_OPENERS:
        return [last] + tokens[:-1], (config.RTL_OPENER_CONFIDENCE, "Moved document opener to line start")

    if len(tokens) >= 3 and last in SENTENCE_INITIAL_WORDS:
        return tokens[::-1], (config.RTL_REVERSAL_CONFIDENCE, "Reversed line ending in a sentence-initial word")

    if first[-1] in TERMINAL_PUNCTUATION and last[-1] not in TERMINAL_PUNCTUATION:
        return tokens[::-1], (config.RTL_REVERSAL_CONFIDENCE, "Reversed line starting with terminal punctuation")

    return tokens, None


def correct_direction(text: str) -> PassResult:
    """
    Repair Arabic lines whose tokens were captured in visual order.

    Only lines where Arabic characters exceed RTL_LINE_ARABIC_RATIO of the
    non-space characters are examined. Record positions are line indexes.
    """
    corrections: List[CorrectionRecord] = []
    lines = text.split("\n")

    for index, line in enumerate(lines):
        if not _is_arabic_line(line):
            continue

        tokens = line.split()
        if len(tokens) < 2:
            continue

        current = line
        changed = False

        if tokens[-1] == "رقم" and _NUMERAL_RE.match(tokens[-2]):
            tokens = tokens[:-2] + ["رقم", tokens[-2]]
            swapped = " ".join(tokens)
            corrections.append(
                _direction_record(
                    current, swapped, config.RTL_NUMBER_CONFIDENCE, index,
                    "Moved number after its classifier",
                )
            )
            current = swapped
            changed = True

        tokens, applied = _reorder_tokens(tokens)
        if applied is not None:
            confidence, description = applied
            reordered = " ".join(tokens)
            corrections.append(
                _direction_record(current, reordered, confidence, index, description)
            )
            changed = True

        if changed:
            lines[index] = " ".join(tokens)

    return PassResult(text="\n".join(lines), corrections=corrections)


# -----------------------------
# 5. Legal terms
# -----------------------------
def _legal(pattern: str, replacement: str, description: str) -> CorrectionRule:
    return rule(
        pattern,
        replacement,
        CorrectionKind.LEGAL_TERM,
        config.LEGAL_TERM_CONFIDENCE,
        description,
    )


LEGAL_TERM_RULES = [
    _legal(
        rf"الجمهورية{H}الجزائرية{H}الديمقراطية{H}(و?){H}الشعبية",
        r"الجمهورية الجزائرية الديمقراطية \1الشعبية",
        "Official state name",
    ),
    _legal(rf"مرسوم{H}رئاسي{H}رقم", "مرسوم رئاسي رقم", "Presidential decree"),
    _legal(rf"مرسوم{H}تنفيذي{H}رقم", "مرسوم تنفيذي رقم", "Executive decree"),
    _legal(rf"قرار{H}وزاري{H}رقم", "قرار وزاري رقم", "Ministerial order"),
    _legal(rf"المؤرخ{H}في(?!{L})", "المؤرخ في", "Official date formula"),
    _legal(rf"الموافق{H}ل\u0640?(?!{L})", "الموافق لـ", "Gregorian correspondence"),
    _legal(rf"رئيس{H}الجمهورية", "رئيس الجمهورية", "Head of state title"),
    _legal(rf"الوزير{H}الأول(?!{L})", "الوزير الأول", "Prime minister title"),
    _legal(rf"الجريدة{H}الرسمية", "الجريدة الرسمية", "Official gazette"),
]


def normalize_legal_terms(text: str) -> PassResult:
    """Rewrite official phrases to their canonical spelling and spacing."""
    text, corrections = apply_rules(text, LEGAL_TERM_RULES)
    return PassResult(text=text, corrections=corrections)


# -----------------------------
# 6. Final polishing
# -----------------------------
def _polish(pattern: str, replacement: str, description: str) -> CorrectionRule:
    return rule(
        pattern,
        replacement,
        CorrectionKind.MARKER_CLEANUP,
        config.POLISH_CONFIDENCE,
        description,
    )


POLISH_RULES = [
    _polish(r"\r\n?", "\n", "Normalized line endings"),
    _polish(r"[^\S\n]+(?=\n)", "", "Removed trailing spaces"),
    _polish(r"[^\S\n]{2,}|[^\S\n ]", " ", "Collapsed repeated spaces"),
    _polish(r"\n{3,}", "\n\n", "Collapsed blank lines"),
    _polish(rf"([،؛؟])(?={L}|{LATIN_LETTER})", r"\1 ", "Space after Arabic punctuation"),
    _polish(rf"([.!:])(?={L})", r"\1 ", "Space after punctuation"),
    _polish(rf"({L})(?={LATIN_LETTER})", r"\1 ", "Space between Arabic and Latin"),
    _polish(rf"({LATIN_LETTER})(?={L})", r"\1 ", "Space between Latin and Arabic"),
    _polish(r"\A\s+|\s+\Z", "", "Trimmed surrounding whitespace"),
]


def final_polish(text: str) -> PassResult:
    text, corrections = apply_rules(text, POLISH_RULES)
    return PassResult(text=text, corrections=corrections)


# -----------------------------
# Orchestration
# -----------------------------
PIPELINE_PASSES: List[Tuple[str, Callable[[str], PassResult]]] = [
    ("marker_cleanup", clean_markers),
    ("word_separation", separate_words),
    ("ligatures", correct_ligatures),
    ("rtl_direction", correct_direction),
    ("legal_terms", normalize_legal_terms),
    ("final_polish", final_polish),
]


def _run_passes(
    text: str, passes: List[Tuple[str, Callable[[str], PassResult]]]
) -> Tuple[str, List[CorrectionRecord], List[str]]:
    """
    Run passes in order. A pass that raises leaves the text unchanged and
    adds a diagnostic note instead of records.
    """
    corrections: List[CorrectionRecord] = []
    notes: List[str] = []

    for name, correction_pass in passes:
        try:
            result = correction_pass(text)
        except Exception as e:
            logger.exception("Correction pass '%s' failed, text passed through", name)
            notes.append(f"Pass '{name}' skipped: {e}")
            continue

        text = result.text
        corrections.extend(result.corrections)
        logger.debug("Pass '%s': %d correction(s)", name, len(result.corrections))

    return text, corrections, notes


def process_advanced_corrections(text: str) -> CorrectionReport:
    """
    Run every correction pass and return the corrected text with a report.

    Args:
        text: Raw OCR text. Empty input is valid.

    Returns:
        CorrectionReport with records in pass order and per-kind statistics.
    """
    if not text:
        return CorrectionReport(text="")

    start = time.perf_counter()
    corrected, corrections, notes = _run_passes(text, PIPELINE_PASSES)
    elapsed_ms = (time.perf_counter() - start) * 1000

    statistics = CorrectionStatistics.from_records(corrections, elapsed_ms)
    logger.info(
        "Correction pipeline done: %d correction(s) in %.1fms",
        statistics.total_corrections,
        elapsed_ms,
    )

    return CorrectionReport(
        text=corrected,
        corrections=corrections,
        statistics=statistics,
        notes=notes,
    )


def _language_for(letter_ratio: float) -> str:
    if letter_ratio > config.ARABIC_LANGUAGE_RATIO:
        return "ar"
    if letter_ratio > config.MIXED_LANGUAGE_RATIO:
        return "mixed"
    return "fr"


def process_arabic_text(text: str) -> ArabicProcessingResult:
    """
    Correct OCR text without building a detailed report.

    Arabic passes (markers, separation, ligatures, direction, legal terms)
    only run when the script ratio exceeds MIN_ARABIC_RATIO.
    """
    if not text:
        return ArabicProcessingResult(
            original_text="",
            processed_text="",
            profile=select_profile(0.0).name,
        )

    ratio = detect_script_ratio(text)
    profile = select_profile(ratio)
    processed = text
    summary: List[str] = []
    counts: Dict[CorrectionKind, int] = {kind: 0 for kind in CorrectionKind}

    if ratio > config.MIN_ARABIC_RATIO:
        processed, corrections, notes = _run_passes(text, PIPELINE_PASSES[:5])
        for record in corrections:
            counts[record.kind] += 1
        summary.extend(notes)

        labels = [
            (CorrectionKind.MARKER_CLEANUP, "Removed {} stray marker(s)"),
            (CorrectionKind.WORD_SEPARATION, "Separated {} glued word(s)"),
            (CorrectionKind.LIGATURE_FIX, "Corrected {} ligature(s)"),
            (CorrectionKind.RTL_DIRECTION, "Corrected direction of {} line(s)"),
            (CorrectionKind.LEGAL_TERM, "Normalized {} legal term(s)"),
        ]
        summary.extend(label.format(counts[kind]) for kind, label in labels if counts[kind])
    else:
        logger.debug("Script ratio %.2f too low, Arabic passes skipped", ratio)

    return ArabicProcessingResult(
        original_text=text,
        processed_text=processed.strip(),
        corrections=summary,
        arabic_ratio=ratio,
        language=_language_for(detect_letter_ratio(text)),
        profile=profile.name,
        words_separated=counts[CorrectionKind.WORD_SEPARATION],
        ligatures_corrected=counts[CorrectionKind.LIGATURE_FIX],
    )


def postprocess_page(page_result: OCRPageResult) -> OCRPageResult:
    """
    Apply the correction pipeline to a page result.

    Args:
        page_result: Raw OCR page result from the engine.

    Returns:
        OCRPageResult with corrected text, script ratio and correction report.
    """
    report = process_advanced_corrections(page_result.raw_text)
    warnings = list(page_result.warnings) + report.notes

    return OCRPageResult(
        page_number=page_result.page_number,
        lines=page_result.lines,
        raw_text=page_result.raw_text,
        text=report.text,
        confidence=page_result.confidence,
        script_ratio=detect_script_ratio(page_result.raw_text),
        profile=page_result.profile,
        report=report,
        warnings=warnings,
        has_errors=page_result.has_errors,
    )
