"""
profiles.py

Script-ratio detection and document profile selection.

Profiles (character whitelists and engine tuning) are read from the
JSON data table at config.PROFILES_PATH and cached after first load.
"""

import json
import logging
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from . import config
from .schemas import DocumentProfile

logger = logging.getLogger(__name__)

# Arabic, supplement, extended-A and both presentation-form blocks (BOM excluded)
ARABIC_RANGES = "\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFE"

_ARABIC_CHAR_RE = re.compile(f"[{ARABIC_RANGES}]")
_ARABIC_LETTER_RE = re.compile(
    "[\u0621-\u063A\u0641-\u064A\u0671-\u06D3\u0750-\u077F\uFB50-\uFDFF\uFE70-\uFEFE]"
)
_LATIN_LETTER_RE = re.compile("[A-Za-zÀ-ÿ]")
_WHITESPACE_RE = re.compile(r"\s")


class _ProfileSpec(BaseModel):
    character_sets: List[str]
    pageseg_mode: int
    ocr_engine_mode: int
    description: str = ""


class _Threshold(BaseModel):
    profile: str
    above: float = Field(..., ge=0.0, le=1.0)


class _ProfileTable(BaseModel):
    version: int
    character_sets: Dict[str, str]
    engine_parameters: Dict[str, str] = Field(default_factory=dict)
    profiles: Dict[str, _ProfileSpec]
    selection: List[_Threshold]
    fallback_profile: str


# Profile table cache
_profile_table: Optional[_ProfileTable] = None
_profiles: Optional[Dict[str, DocumentProfile]] = None


def _load_table() -> _ProfileTable:
    global _profile_table
    if _profile_table is not None:
        return _profile_table

    with open(config.PROFILES_PATH, "r", encoding="utf-8") as f:
        _profile_table = _ProfileTable.model_validate(json.load(f))

    logger.info(
        "Loaded %d document profiles (table v%d)",
        len(_profile_table.profiles),
        _profile_table.version,
    )
    return _profile_table


def build_whitelist(set_names: List[str]) -> str:
    """Union of the named character sets, first occurrence order, no duplicates."""
    table = _load_table()
    chars = []
    for name in set_names:
        try:
            chars.append(table.character_sets[name])
        except KeyError:
            raise ValueError(f"Unknown character set '{name}'") from None
    return "".join(dict.fromkeys("".join(chars)))


def load_profiles() -> Dict[str, DocumentProfile]:
    """Build every DocumentProfile from the data table. Cached."""
    global _profiles
    if _profiles is not None:
        return _profiles

    table = _load_table()
    _profiles = {
        name: DocumentProfile(
            name=name,
            whitelist=build_whitelist(spec.character_sets),
            pageseg_mode=spec.pageseg_mode,
            ocr_engine_mode=spec.ocr_engine_mode,
            engine_parameters=table.engine_parameters,
            description=spec.description,
        )
        for name, spec in table.profiles.items()
    }
    return _profiles


def reset_profiles():
    """Reset the cached profile table (useful for testing)."""
    global _profile_table, _profiles
    _profile_table = None
    _profiles = None


def get_profile(name: str) -> DocumentProfile:
    profiles = load_profiles()
    if name not in profiles:
        raise ValueError(f"Unknown document profile '{name}'. Known: {sorted(profiles)}")
    return profiles[name]


def detect_script_ratio(text: str) -> float:
    """
    Fraction of Arabic-range code points among non-whitespace characters.

    Returns 0.0 for empty or whitespace-only input.
    """
    if not text:
        return 0.0

    total = len(_WHITESPACE_RE.sub("", text))
    if total == 0:
        return 0.0

    return len(_ARABIC_CHAR_RE.findall(text)) / total


def detect_letter_ratio(text: str) -> float:
    """Fraction of Arabic letters among Arabic and Latin letters."""
    if not text:
        return 0.0

    arabic = len(_ARABIC_LETTER_RE.findall(text))
    latin = len(_LATIN_LETTER_RE.findall(text))
    if arabic + latin == 0:
        return 0.0

    return arabic / (arabic + latin)


def select_profile(ratio: float) -> DocumentProfile:
    """
    Pick the document profile for a script ratio.

    Thresholds are exclusive lower bounds checked from the most Arabic
    profile down, so a ratio exactly on a boundary gets the lower profile.
    """
    table = _load_table()
    for threshold in sorted(table.selection, key=lambda t: t.above, reverse=True):
        if ratio > threshold.above:
            return get_profile(threshold.profile)
    return get_profile(table.fallback_profile)


def profile_for_text(text: str) -> DocumentProfile:
    return select_profile(detect_script_ratio(text))
