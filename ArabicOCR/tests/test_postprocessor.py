"""
Tests for the correction passes and the correction pipeline.
"""

import re
import unicodedata

import pytest

from ArabicOCR import postprocessor
from ArabicOCR.postprocessor import (
    PRESENTATION_FORMS,
    _MARKERS,
    clean_markers,
    correct_direction,
    correct_ligatures,
    final_polish,
    load_legal_dictionary,
    normalize_legal_terms,
    postprocess_page,
    process_advanced_corrections,
    process_arabic_text,
    reset_dictionary,
    separate_words,
)
from ArabicOCR.profiles import reset_profiles
from ArabicOCR.schemas import CorrectionKind, OCRPageResult, PassResult


@pytest.fixture(autouse=True)
def _reset():
    """Reset dictionary and profile caches before each test."""
    reset_dictionary()
    reset_profiles()
    yield
    reset_dictionary()
    reset_profiles()


def _strip_spaces(text):
    return re.sub(r"\s", "", text)


class TestLegalDictionary:
    def test_loads_words_without_comments(self):
        words = load_legal_dictionary()
        assert "الجمهورية" in words
        assert "المحكمة" in words
        assert not any(w.startswith("#") for w in words)

    def test_missing_file(self, monkeypatch):
        monkeypatch.setattr(postprocessor.config, "DICTIONARY_PATH", "/nonexistent/lexicon.txt")
        assert load_legal_dictionary() == set()


class TestCleanMarkers:
    def test_removes_every_marker(self):
        markers = "".join(marker for marker, _ in _MARKERS)
        result = clean_markers(f"مر{markers}سوم")
        assert result.text == "مرسوم"
        assert len(result.corrections) == len(_MARKERS)

    def test_record_fields(self):
        result = clean_markers("\u200fقانون")
        record = result.corrections[0]
        assert record.kind == CorrectionKind.MARKER_CLEANUP
        assert record.original == "\u200f"
        assert record.corrected == ""
        assert record.confidence == 1.0
        assert record.position == 0
        assert "RLM" in record.description

    def test_repeated_marker_in_ascii(self):
        result = clean_markers("a\u200bb\u200bc\u200bd\u200b")
        assert result.text == "abcd"
        assert len(result.corrections) == 4
        assert all(r.kind == CorrectionKind.MARKER_CLEANUP for r in result.corrections)
        assert [r.position for r in result.corrections] == [1, 3, 5, 7]

    def test_clean_text_untouched(self):
        result = clean_markers("قانون المالية")
        assert result.text == "قانون المالية"
        assert result.corrections == []


class TestSeparateWords:
    def test_decree_qualifier(self):
        result = separate_words("صدر مرسوم رئاسيرقم 12")
        assert result.text == "صدر مرسوم رئاسي رقم 12"
        assert len(result.corrections) == 1
        record = result.corrections[0]
        assert record.kind == CorrectionKind.WORD_SEPARATION
        assert record.original == "رئاسيرقم"
        assert record.corrected == "رئاسي رقم"
        assert record.confidence == 0.9
        assert record.position == len("صدر مرسوم ")

    def test_state_name(self):
        result = separate_words("الجمهوريةالجزائرية")
        assert result.text == "الجمهورية الجزائرية"

    def test_reference_number(self):
        assert separate_words("المادة12").text == "المادة 12"

    def test_number_sandwich(self):
        result = separate_words("القانون12المتعلق")
        assert result.text == "القانون 12 المتعلق"
        assert result.corrections[0].confidence == 0.75

    def test_number_then_text(self):
        assert separate_words("12جانفي").text == "12 جانفي"

    def test_single_letter_prefix_not_split(self):
        # A lone proclitic before a number is left alone
        assert separate_words("و12").text == "و12"

    def test_known_compound(self):
        result = separate_words("المحكمةالعليا")
        assert result.text == "المحكمة العليا"
        assert result.corrections[0].confidence == 0.6

    def test_lexicon_word_never_split(self):
        result = separate_words("الديمقراطية")
        assert result.text == "الديمقراطية"
        assert result.corrections == []

    def test_long_token_split_in_half(self):
        token = "ك" * 18
        result = separate_words(token)
        assert result.text == "ك" * 9 + " " + "ك" * 9
        assert result.corrections[-1].confidence == 0.5

    def test_only_adds_whitespace(self):
        samples = [
            "صدر مرسوم رئاسيرقم 12",
            "الجمهوريةالجزائرية الديمقراطيةالشعبية",
            "المؤرخفي 12 مارس",
            "وزيرالعدل",
            "بناءعلى تقرير",
            "ك" * 40,
            "Loi n° 08-09 du 25 février 2008",
        ]
        for text in samples:
            result = separate_words(text).text
            assert _strip_spaces(result) == _strip_spaces(text)
            assert len(result) >= len(text)

    def test_latin_untouched(self):
        text = "Article12 du décret"
        assert separate_words(text).text == text


class TestCorrectLigatures:
    def test_positional_forms_to_base_letters(self):
        # meem initial, reh final, seen initial, waw final, meem isolated
        result = correct_ligatures("\uFEE3\uFEAE\uFEB3\uFEEE\uFEE1")
        assert result.text == "مرسوم"
        assert len(result.corrections) == 5
        assert all(r.kind == CorrectionKind.LIGATURE_FIX for r in result.corrections)

    def test_lam_alif(self):
        assert correct_ligatures("\uFEFB").text == "لا"
        assert correct_ligatures("\uFEF7").text == "لأ"

    def test_no_presentation_form_survives(self):
        leftover = re.compile("[\uFB50-\uFDFF\uFE70-\uFEFC]")
        for glyph, expected in PRESENTATION_FORMS.items():
            assert not leftover.search(expected)
            assert not leftover.search(correct_ligatures(glyph).text)

    def test_word_matches_nfkc(self):
        text = "\uFEDF\uFEFC\uFEE1 \uFEE3\uFEA4\uFEDC\uFEE4\uFE94"
        assert correct_ligatures(text).text == unicodedata.normalize("NFKC", text)

    def test_isolated_harakat_attach_without_space(self):
        assert correct_ligatures("كتاب\uFE70").text == "كتاب\u064B"
        assert correct_ligatures("\uFE7C").text == "\u0651"

    def test_honorifics(self):
        assert correct_ligatures("\uFDFA").text == "(ص)"

    def test_removes_tatweel(self):
        result = correct_ligatures("مـــحكمة")
        assert result.text == "محكمة"
        assert len(result.corrections) == 1

    def test_keeps_abbreviation_tatweel(self):
        assert correct_ligatures("الموافق لـ 2024").text == "الموافق لـ 2024"

    def test_exotic_spaces(self):
        assert correct_ligatures("قانون\u00A0المالية").text == "قانون المالية"

    def test_split_after_taa_marbuta(self):
        assert correct_ligatures("المحكمةالعليا").text == "المحكمة العليا"

    def test_plain_text_untouched(self):
        result = correct_ligatures("قانون المالية")
        assert result.corrections == []


class TestCorrectDirection:
    def test_reverses_line_ending_with_preposition(self):
        result = correct_direction("عليه المصادقة تمت وقد في")
        assert result.text == "في وقد تمت المصادقة عليه"
        assert len(result.corrections) == 1
        assert result.corrections[0].kind == CorrectionKind.RTL_DIRECTION
        assert result.corrections[0].confidence == 0.7

    def test_well_ordered_line_untouched(self):
        result = correct_direction("تمت المصادقة على القانون")
        assert result.text == "تمت المصادقة على القانون"
        assert result.corrections == []

    def test_moves_trailing_opener(self):
        result = correct_direction("في 5 يناير المؤرخ")
        assert result.text == "المؤرخ في 5 يناير"
        assert result.corrections[0].confidence == 0.8

    def test_number_after_classifier(self):
        result = correct_direction("صدر القانون 12 رقم")
        assert result.text == "صدر القانون رقم 12"
        assert len(result.corrections) == 1
        assert result.corrections[0].confidence == 0.75

    def test_leading_punctuation(self):
        result = correct_direction("القانون. هذا يطبق")
        assert result.text == "يطبق هذا القانون."

    def test_position_is_line_index(self):
        result = correct_direction("سطر أول\nعليه المصادقة تمت وقد في")
        assert result.text.split("\n")[0] == "سطر أول"
        assert result.corrections[0].position == 1

    def test_enumerated_clause_untouched(self):
        result = correct_direction("أولا: تطبق أحكام هذا القانون")
        assert result.text == "أولا: تطبق أحكام هذا القانون"
        assert result.corrections == []

    def test_record_keeps_original_spacing(self):
        line = "عليه  المصادقة تمت وقد في"
        result = correct_direction(line)
        assert result.text == "في وقد تمت المصادقة عليه"
        assert result.corrections[0].original == line

    def test_latin_lines_ignored(self):
        text = ". le décret de"
        assert correct_direction(text).text == text

    def test_single_token_line(self):
        assert correct_direction("في").corrections == []


class TestNormalizeLegalTerms:
    def test_state_name_spacing(self):
        text = "الجمهورية   الجزائرية  الديمقراطية    الشعبية"
        result = normalize_legal_terms(text)
        assert result.text == "الجمهورية الجزائرية الديمقراطية الشعبية"
        assert len(result.corrections) == 1
        record = result.corrections[0]
        assert record.kind == CorrectionKind.LEGAL_TERM
        assert record.original == text
        assert record.position == 0
        assert record.confidence == 0.95

    def test_state_name_with_conjunction(self):
        text = "الجمهورية الجزائرية الديمقراطية  والشعبية"
        result = normalize_legal_terms(text)
        assert result.text == "الجمهورية الجزائرية الديمقراطية والشعبية"

    def test_canonical_text_emits_nothing(self):
        result = normalize_legal_terms("مرسوم تنفيذي رقم 05")
        assert result.corrections == []

    def test_date_formulas(self):
        assert normalize_legal_terms("المؤرخ   في").text == "المؤرخ في"
        assert normalize_legal_terms("الموافق ل 12").text == "الموافق لـ 12"

    def test_does_not_cross_lines(self):
        text = "رئيس\nالجمهورية"
        assert normalize_legal_terms(text).text == text


class TestFinalPolish:
    def test_collapses_spaces_and_blank_lines(self):
        result = final_polish("النص  هنا\n\n\n\nتم")
        assert result.text == "النص هنا\n\nتم"

    def test_space_after_arabic_comma(self):
        assert final_polish("مادة،قانون").text == "مادة، قانون"

    def test_script_boundary(self):
        assert final_polish("المادةArticle").text == "المادة Article"

    def test_trims(self):
        result = final_polish("  نص  ")
        assert result.text == "نص"
        assert all(r.kind == CorrectionKind.MARKER_CLEANUP for r in result.corrections)


class TestProcessAdvancedCorrections:
    def test_empty_input(self):
        report = process_advanced_corrections("")
        assert report.text == ""
        assert report.corrections == []
        assert report.statistics.total_corrections == 0

    def test_latin_only_has_no_corrections(self):
        report = process_advanced_corrections("Le décret est publié au Journal officiel.")
        assert report.text == "Le décret est publié au Journal officiel."
        assert report.corrections == []

    def test_official_header(self):
        report = process_advanced_corrections(
            "الجمهوريةالجزائرية الديمقراطية والشعبية مرسوم تنفيذيرقم 05"
        )
        assert report.text == "الجمهورية الجزائرية الديمقراطية والشعبية مرسوم تنفيذي رقم 05"
        assert report.statistics.words_separated == 2
        assert report.statistics.total_corrections == 2
        assert {r.corrected for r in report.corrections} == {
            "الجمهورية الجزائرية",
            "تنفيذي رقم",
        }

    def test_markers_counted(self):
        report = process_advanced_corrections("\u200fمرسوم\u200e")
        assert report.text == "مرسوم"
        assert report.statistics.markers_cleaned == 2

    def test_statistics_match_records(self):
        report = process_advanced_corrections(
            "\u200fصدر مرسوم رئاسيرقم 12 \uFEFB عليه المصادقة تمت وقد في"
        )
        stats = report.statistics
        by_kind = {kind: 0 for kind in CorrectionKind}
        for record in report.corrections:
            by_kind[record.kind] += 1
        assert stats.words_separated == by_kind[CorrectionKind.WORD_SEPARATION]
        assert stats.ligatures_corrected == by_kind[CorrectionKind.LIGATURE_FIX]
        assert stats.directions_corrected == by_kind[CorrectionKind.RTL_DIRECTION]
        assert stats.total_corrections == len(report.corrections)
        assert stats.processing_time_ms >= 0

    def test_failing_pass_becomes_note(self, monkeypatch):
        def broken(text):
            raise RuntimeError("boom")

        monkeypatch.setattr(
            postprocessor,
            "PIPELINE_PASSES",
            [
                ("marker_cleanup", clean_markers),
                ("broken", broken),
                ("final_polish", final_polish),
            ],
        )
        report = process_advanced_corrections("\u200fنص")
        assert report.text == "نص"
        assert report.statistics.markers_cleaned == 1
        assert len(report.notes) == 1
        assert "broken" in report.notes[0]


class TestProcessArabicText:
    def test_empty_input(self):
        result = process_arabic_text("")
        assert result.processed_text == ""
        assert result.corrections == []
        assert result.profile == "legal"

    def test_latin_text_skips_arabic_passes(self):
        result = process_arabic_text("Décret exécutif n° 05")
        assert result.processed_text == "Décret exécutif n° 05"
        assert result.language == "fr"
        assert result.corrections == []

    def test_arabic_text(self):
        result = process_arabic_text("صدر مرسوم رئاسيرقم 12")
        assert result.processed_text == "صدر مرسوم رئاسي رقم 12"
        assert result.words_separated == 1
        assert result.language == "ar"
        assert result.profile == "arabic_primary"
        assert result.corrections == ["Separated 1 glued word(s)"]

    def test_mixed_language(self):
        result = process_arabic_text("Article 5 المادة الخامسة")
        assert result.language == "mixed"


class TestPostprocessPage:
    def test_fills_text_and_report(self):
        page = OCRPageResult(
            page_number=1,
            raw_text="مرسوم تنفيذيرقم 05",
            confidence=0.9,
            profile="arabic_primary",
        )
        result = postprocess_page(page)
        assert result.raw_text == "مرسوم تنفيذيرقم 05"
        assert result.text == "مرسوم تنفيذي رقم 05"
        assert result.report.statistics.words_separated == 1
        assert result.profile == "arabic_primary"
        assert result.confidence == 0.9
        assert result.script_ratio > 0.8

    def test_empty_page(self):
        result = postprocess_page(OCRPageResult(page_number=2))
        assert result.text == ""
        assert result.report.corrections == []
