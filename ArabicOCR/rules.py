"""
rules.py

Declarative correction rules and the loop that applies them.

A rule is a compiled pattern, a replacement (regex template or callable),
a correction kind, a fixed confidence and a description. Rules are grouped
in ordered tables; each rule scans the text left by the previous one.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Tuple, Union

from .schemas import CorrectionKind, CorrectionRecord

logger = logging.getLogger(__name__)

Replacement = Union[str, Callable[[re.Match], str]]

# Arabic letters without tatweel (U+0640) or diacritics
ARABIC_LETTER = "[\u0621-\u063A\u0641-\u064A]"
LATIN_LETTER = "[A-Za-z\u00C0-\u00D6\u00D8-\u00F6\u00F8-\u00FF]"


@dataclass(frozen=True)
class CorrectionRule:
    """A single pattern -> replacement rule with its metadata."""

    pattern: re.Pattern
    replacement: Replacement
    kind: CorrectionKind
    confidence: float
    description: str

    def render(self, match: re.Match) -> str:
        if callable(self.replacement):
            return self.replacement(match)
        return match.expand(self.replacement)


def rule(
    pattern: str,
    replacement: Replacement,
    kind: CorrectionKind,
    confidence: float,
    description: str,
    flags: int = 0,
) -> CorrectionRule:
    """Compile a pattern into a CorrectionRule."""
    return CorrectionRule(
        pattern=re.compile(pattern, flags),
        replacement=replacement,
        kind=kind,
        confidence=confidence,
        description=description,
    )


def apply_rule(text: str, correction_rule: CorrectionRule) -> Tuple[str, List[CorrectionRecord]]:
    """
    Apply one rule to the whole text.

    Every match whose replacement differs from the matched span yields a
    record positioned at the match start in the text the rule scanned.
    """
    records: List[CorrectionRecord] = []

    def _substitute(match: re.Match) -> str:
        replacement = correction_rule.render(match)
        if replacement != match.group(0):
            records.append(
                CorrectionRecord(
                    kind=correction_rule.kind,
                    original=match.group(0),
                    corrected=replacement,
                    confidence=correction_rule.confidence,
                    position=match.start(),
                    description=correction_rule.description,
                )
            )
        return replacement

    corrected = correction_rule.pattern.sub(_substitute, text)
    return corrected, records


def apply_rules(text: str, rules: List[CorrectionRule]) -> Tuple[str, List[CorrectionRecord]]:
    """Apply an ordered rule table, collecting records in rule order."""
    records: List[CorrectionRecord] = []

    for correction_rule in rules:
        text, rule_records = apply_rule(text, correction_rule)
        if rule_records:
            logger.debug(
                "%s: %d match(es)", correction_rule.description, len(rule_records)
            )
        records.extend(rule_records)

    return text, records
